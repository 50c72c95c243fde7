import logging
from uuid import UUID
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user, get_gateway
from app.core.config import settings
from app.core.exceptions import (
    AmountMismatchError,
    CallbackRejectedError,
    InvalidSignatureError,
    TicketNotFoundError,
)
from app.models.account import Account
from app.schemas.payment import (
    IpnResponse,
    PaymentCreateRequest,
    PaymentCreateResponse,
    PaymentQueryResponse,
)
from app.services import reconciliation, tickets
from app.services.reservations import release_expired_holds
from app.services.vnpay import VNPayGateway
from app.utils.net import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def _failure_redirect(**params) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    return RedirectResponse(f"{settings.FRONTEND_URL}/payment/failed?{query}")


# ---------------------------------------------------------------------------
# POST /payments/vnpay/create: signed redirect for a pending ticket
# ---------------------------------------------------------------------------


@router.post("/vnpay/create", response_model=PaymentCreateResponse)
def create_vnpay_payment(
    data: PaymentCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_user),
    gateway: VNPayGateway = Depends(get_gateway),
):
    """
    Build the VNPay payment URL for one of the caller's pending tickets.
    If the URL cannot be built the ticket is cancelled and its seats released.
    """
    release_expired_holds(db)
    ticket = tickets.load_ticket(db, data.ticket_id, account_id=current_user.id)
    return reconciliation.start_payment(db, ticket, get_client_ip(request), gateway)


# ---------------------------------------------------------------------------
# GET /payments/vnpay/return: the end user's browser coming back from VNPay
# ---------------------------------------------------------------------------


@router.get("/vnpay/return")
def vnpay_return(
    request: Request,
    db: Session = Depends(get_db),
    gateway: VNPayGateway = Depends(get_gateway),
):
    """
    Verify the signed query string, finalize the ticket and send the user to
    the storefront success or failure page. Never returns JSON.
    """
    params = dict(request.query_params)
    order_id = params.get("vnp_TxnRef")

    try:
        result = reconciliation.reconcile_callback(db, params, gateway)
    except CallbackRejectedError:
        return _failure_redirect(error="missing_params", orderId=order_id or "unknown")
    except InvalidSignatureError:
        return _failure_redirect(error="invalid_signature", orderId=order_id)
    except AmountMismatchError:
        return _failure_redirect(error="invalid_amount", orderId=order_id)
    except TicketNotFoundError:
        return _failure_redirect(error="order_not_found", orderId=order_id)
    except Exception:
        logger.exception("VNPay return processing failed for %s.", order_id)
        db.rollback()
        return _failure_redirect(error="server_error", orderId=order_id)

    if result.paid:
        return RedirectResponse(f"{settings.FRONTEND_URL}/cgv?{urlencode({'payment': 'success', 'orderId': order_id})}")
    return _failure_redirect(
        orderId=order_id,
        responseCode=result.response_code,
        message=result.message,
    )


# ---------------------------------------------------------------------------
# GET /payments/vnpay/ipn: server-to-server notification from VNPay
# ---------------------------------------------------------------------------


@router.get("/vnpay/ipn", response_model=IpnResponse)
def vnpay_ipn(
    request: Request,
    db: Session = Depends(get_db),
    gateway: VNPayGateway = Depends(get_gateway),
):
    """Answer with the RspCode contract VNPay expects; it retries on anything but 00/02."""
    params = dict(request.query_params)

    try:
        result = reconciliation.reconcile_callback(db, params, gateway)
    except (CallbackRejectedError, InvalidSignatureError):
        return IpnResponse(RspCode="97", Message="Invalid signature")
    except TicketNotFoundError:
        return IpnResponse(RspCode="01", Message="Order not found")
    except AmountMismatchError:
        return IpnResponse(RspCode="04", Message="Invalid amount")
    except Exception:
        logger.exception("VNPay IPN processing failed for %s.", params.get("vnp_TxnRef"))
        db.rollback()
        return IpnResponse(RspCode="99", Message="Unknown error")

    if result.outcome == reconciliation.ALREADY_PROCESSED:
        return IpnResponse(RspCode="02", Message="Order already confirmed")
    return IpnResponse(RspCode="00", Message="Confirm Success")


# ---------------------------------------------------------------------------
# POST /payments/{ticket_id}/query: pull the result when no callback arrived
# ---------------------------------------------------------------------------


@router.post("/{ticket_id}/query", response_model=PaymentQueryResponse)
def query_payment(
    ticket_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_user),
    gateway: VNPayGateway = Depends(get_gateway),
):
    ticket = tickets.load_ticket(db, ticket_id, account_id=current_user.id)
    result = reconciliation.query_and_apply(db, ticket, gateway, get_client_ip(request))
    return PaymentQueryResponse(
        outcome=result.outcome,
        ticket_id=result.ticket.id,
        status=result.ticket.status,
        payment_status=result.ticket.payment_status,
        response_code=result.response_code,
        message=result.message,
    )
