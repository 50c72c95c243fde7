from typing import Any, Dict, Iterable, Optional


class BookingError(Exception):
    """Base class for every failure the booking core reports to a caller.

    `error` is a stable machine-readable code, `message` is the text shown to
    the user and `extra` carries additional response fields.
    """

    status_code = 400
    error = "booking_error"
    message = "The request could not be completed"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message, **self.extra}


# --- Validation ---

class InvalidRequestError(BookingError):
    error = "invalid_request"
    message = "Invalid booking request"


class MixedSeatTypesError(BookingError):
    status_code = 422
    error = "mixed_seat_types"
    message = "All selected seats must be of the same seat type"


# --- Lookups ---

class SlotNotFoundError(BookingError):
    status_code = 404
    error = "slot_not_found"
    message = "Showtime not found or no longer available"


class TicketNotFoundError(BookingError):
    status_code = 404
    error = "ticket_not_found"
    message = "Ticket not found"


# --- Conflicts ---

class SeatUnavailableError(BookingError):
    status_code = 409
    error = "seat_unavailable"
    message = "One or more selected seats are no longer available"

    def __init__(self, seat_ids: Iterable[Any] = (), message: Optional[str] = None):
        super().__init__(
            message,
            extra={"unavailable_seat_ids": [str(s) for s in seat_ids]},
        )


class PriceChangedError(BookingError):
    status_code = 409
    error = "price_changed"
    message = "Prices have changed, please review your order"


class TicketStateError(BookingError):
    status_code = 409
    error = "invalid_ticket_state"
    message = "The ticket cannot be changed in its current state"


class ReservationExpiredError(BookingError):
    status_code = 410
    error = "reservation_expired"
    message = "Your seat reservation has expired, please select seats again"


# --- Promotions ---

class PromotionInvalidError(BookingError):
    status_code = 404
    error = "promotion_invalid"
    message = "Promotion code is invalid"


class PromotionExpiredError(BookingError):
    error = "promotion_expired"
    message = "Promotion has expired"


class PromotionAlreadyUsedError(BookingError):
    status_code = 409
    error = "promotion_already_used"
    message = "You have already used this promotion"


class PromotionUsageLimitError(BookingError):
    status_code = 409
    error = "promotion_usage_limit_reached"
    message = "This promotion has reached its usage limit"


class PromotionNotApplicableError(BookingError):
    error = "promotion_not_applicable"
    message = "Order does not meet the promotion requirements"


# --- Payment gateway trust boundary ---

class CallbackRejectedError(BookingError):
    error = "missing_params"
    message = "Payment response is missing required parameters"


class InvalidSignatureError(BookingError):
    error = "invalid_signature"
    message = "Payment response signature is invalid"


class AmountMismatchError(BookingError):
    error = "invalid_amount"
    message = "Paid amount does not match the order amount"


# --- External dependency ---

class GatewayError(BookingError):
    status_code = 502
    error = "payment_not_completed"
    message = "Payment could not be started, the order was cancelled"


class GatewayUnavailableError(BookingError):
    status_code = 503
    error = "gateway_unavailable"
    message = "Payment service is temporarily unavailable, please retry"
