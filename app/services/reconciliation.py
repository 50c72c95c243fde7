"""
Payment reconciliation.

Turns a verified gateway answer (return redirect, IPN, or a querydr lookup) into
the ticket's terminal state. Every entry point funnels into
`apply_gateway_outcome`, which only ever moves a ticket out of `pending`, so
replayed or duplicated callbacks are harmless.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AmountMismatchError,
    CallbackRejectedError,
    GatewayError,
    InvalidSignatureError,
    PromotionAlreadyUsedError,
    TicketNotFoundError,
)
from app.models.payment import Payment
from app.models.ticket import PaymentStatus, Ticket, TicketStatus
from app.services import promotions
from app.services.reservations import cancel_reservation, ensure_payable
from app.services.tickets import load_ticket
from app.services.vnpay import (
    REQUIRED_CALLBACK_PARAMS,
    SUCCESS_CODE,
    VNPayGateway,
    format_vnp_date,
    parse_txn_ref,
    response_message,
    txn_ref_for,
)
from app.utils.clock import utcnow
from app.utils.money import ZERO, to_gateway_amount

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
CANCELLED = "cancelled"
ALREADY_PROCESSED = "already_processed"
PENDING = "pending"


@dataclass
class ReconciliationResult:
    outcome: str
    ticket: Ticket
    response_code: Optional[str] = None
    message: str = ""

    @property
    def paid(self) -> bool:
        return self.ticket.status == TicketStatus.CONFIRMED


def _record_payment(
    db: Session, ticket: Ticket, status: str, response_code: Optional[str], params: Optional[Mapping[str, str]]
) -> Payment:
    payment = ticket.payment
    if payment is None:
        payment = Payment(ticket_id=ticket.id, txn_ref=txn_ref_for(ticket), amount=ticket.final_amount)
        db.add(payment)
        ticket.payment = payment
    params = dict(params or {})
    payment.status = status
    payment.response_code = response_code
    payment.transaction_no = params.get("vnp_TransactionNo") or payment.transaction_no
    payment.bank_code = params.get("vnp_BankCode") or payment.bank_code
    payment.pay_date = params.get("vnp_PayDate") or payment.pay_date
    if params:
        payment.raw_params = params
    return payment


def _check_amount(db: Session, ticket: Ticket, raw_amount: Optional[str]) -> None:
    try:
        matches = int(raw_amount) == to_gateway_amount(ticket.final_amount)
    except (TypeError, ValueError):
        matches = False
    if not matches:
        db.rollback()
        logger.warning(
            "Amount mismatch for ticket %s: gateway sent %s, expected %s.",
            ticket.tickets_code, raw_amount, to_gateway_amount(ticket.final_amount),
        )
        raise AmountMismatchError()


def apply_gateway_outcome(
    db: Session,
    ticket: Ticket,
    success: bool,
    response_code: Optional[str],
    params: Optional[Mapping[str, str]] = None,
    now: Optional[datetime] = None,
) -> ReconciliationResult:
    """Move a pending ticket to confirmed/paid or cancelled/unpaid and commit."""
    now = now or utcnow()
    message = response_message(response_code)

    if ticket.is_terminal:
        if success and ticket.status == TicketStatus.CANCELLED:
            logger.warning(
                "Late successful payment for cancelled ticket %s (transaction %s); refund required.",
                ticket.tickets_code, (params or {}).get("vnp_TransactionNo"),
            )
            _record_payment(db, ticket, "paid", response_code, params)
        db.commit()
        return ReconciliationResult(ALREADY_PROCESSED, ticket, response_code, message)

    if success:
        ticket.status = TicketStatus.CONFIRMED
        ticket.payment_status = PaymentStatus.PAID
        if ticket.promotion_id:
            usage = promotions.get_usage(db, ticket.account_id, ticket.promotion_id)
            if usage is None:
                logger.warning("Ticket %s carries a promotion with no activation on record.", ticket.tickets_code)
            else:
                try:
                    promotions.redeem(db, usage, ticket, now)
                except PromotionAlreadyUsedError:
                    logger.warning(
                        "Promotion usage %s already redeemed by another ticket; ticket %s keeps its discount.",
                        usage.id, ticket.tickets_code,
                    )
        _record_payment(db, ticket, "paid", response_code, params)
        outcome = CONFIRMED
    else:
        cancel_reservation(db, ticket, reason=f"payment failed ({response_code})", commit=False)
        _record_payment(db, ticket, "failed", response_code, params)
        outcome = CANCELLED

    db.commit()
    logger.info("Ticket %s %s (response code %s).", ticket.tickets_code, outcome, response_code)
    return ReconciliationResult(outcome, ticket, response_code, message)


def reconcile_callback(
    db: Session, params: Mapping[str, str], gateway: VNPayGateway, now: Optional[datetime] = None
) -> ReconciliationResult:
    """Verify a return/IPN callback and apply it. Rejections never touch the ticket."""
    params = dict(params)
    txn_ref = params.get("vnp_TxnRef")

    if any(not params.get(name) for name in REQUIRED_CALLBACK_PARAMS):
        logger.warning("Rejected VNPay callback for %s: missing parameters.", txn_ref or "unknown")
        raise CallbackRejectedError()

    if not gateway.verify_callback(params):
        logger.warning("Rejected VNPay callback for %s: invalid signature.", txn_ref)
        raise InvalidSignatureError()

    ticket_id = parse_txn_ref(txn_ref)
    if ticket_id is None:
        raise TicketNotFoundError()
    ticket = load_ticket(db, ticket_id, for_update=True)

    _check_amount(db, ticket, params.get("vnp_Amount"))

    response_code = params["vnp_ResponseCode"]
    success = response_code == SUCCESS_CODE and params.get("vnp_TransactionStatus", SUCCESS_CODE) == SUCCESS_CODE
    return apply_gateway_outcome(db, ticket, success, response_code, params, now)


def start_payment(
    db: Session, ticket: Ticket, client_ip: str, gateway: VNPayGateway, now: Optional[datetime] = None
) -> dict:
    """
    Build the gateway redirect for a pending ticket.

    If the redirect cannot be built the ticket is cancelled and its seats are
    released, so the user never holds seats for a payment that cannot start.
    """
    now = now or utcnow()
    ensure_payable(db, ticket, now)
    order_id = txn_ref_for(ticket)

    if ticket.final_amount <= ZERO:
        apply_gateway_outcome(db, ticket, True, SUCCESS_CODE, None, now)
        return {
            "payment_url": f"{settings.FRONTEND_URL}/cgv?payment=success&orderId={order_id}",
            "order_id": order_id,
            "amount": ticket.final_amount,
            "expires_at": ticket.expires_at,
        }

    try:
        payment_url = gateway.build_payment_url(ticket, client_ip, now)
    except Exception as exc:
        logger.exception("Could not build the VNPay redirect for ticket %s.", ticket.tickets_code)
        db.rollback()
        cancel_reservation(db, ticket, reason="payment redirect failed")
        raise GatewayError() from exc

    payment = ticket.payment
    if payment is None:
        payment = Payment(ticket_id=ticket.id, txn_ref=order_id, amount=ticket.final_amount)
        db.add(payment)
    payment.amount = ticket.final_amount
    payment.status = "created"
    payment.create_date = format_vnp_date(now)
    db.commit()

    logger.info("Payment redirect issued for ticket %s (%s).", ticket.tickets_code, order_id)
    return {
        "payment_url": payment_url,
        "order_id": order_id,
        "amount": ticket.final_amount,
        "expires_at": ticket.expires_at,
    }


def query_and_apply(
    db: Session, ticket: Ticket, gateway: VNPayGateway, client_ip: str, now: Optional[datetime] = None
) -> ReconciliationResult:
    """Ask the gateway for the transaction result and apply it to a pending ticket."""
    if ticket.is_terminal:
        return ReconciliationResult(ALREADY_PROCESSED, ticket, None, "Ticket already finalized")

    transaction_date = ticket.payment.create_date if ticket.payment else None
    data = gateway.query_transaction(ticket, client_ip, transaction_date=transaction_date, now=now)

    if data.get("vnp_ResponseCode") != SUCCESS_CODE:
        # Query itself failed (unknown transaction, bad request); state is unknown
        return ReconciliationResult(
            PENDING, ticket, data.get("vnp_ResponseCode"), data.get("vnp_Message") or "Transaction not found"
        )

    status = data.get("vnp_TransactionStatus")
    if status == "01":
        return ReconciliationResult(PENDING, ticket, status, "Transaction not completed yet")

    ticket = load_ticket(db, ticket.id, for_update=True)
    if status == SUCCESS_CODE:
        _check_amount(db, ticket, data.get("vnp_Amount"))
    return apply_gateway_outcome(db, ticket, status == SUCCESS_CODE, status, data, now)


