"""
VNPay gateway adapter.

Redirect, return and IPN requests are signed with HMAC-SHA512 over the sorted,
URL-encoded query string. The querydr API signs a fixed, pipe-joined field list.
The signing scheme is a strategy object so the adapter can be tested or pointed
at another gateway version without touching the call sites.
"""
import hashlib
import hmac
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Mapping, Optional, Sequence
from urllib.parse import quote_plus
from uuid import UUID

import requests

from app.core.config import settings
from app.core.exceptions import GatewayError, GatewayUnavailableError, InvalidSignatureError
from app.models.ticket import Ticket
from app.utils.clock import as_utc, utcnow
from app.utils.money import to_gateway_amount

logger = logging.getLogger(__name__)

VNP_VERSION = "2.1.0"
TXN_PREFIX = "BOOKING_"
SUCCESS_CODE = "00"
VN_TZ = timezone(timedelta(hours=7))
REQUIRED_CALLBACK_PARAMS = ("vnp_TxnRef", "vnp_ResponseCode", "vnp_SecureHash")

_RESPONSE_MESSAGES = {
    "00": "Transaction successful",
    "07": "Amount deducted, transaction flagged as suspicious",
    "09": "Card or account is not registered for internet banking",
    "10": "Card or account verification failed more than 3 times",
    "11": "Payment window expired",
    "12": "Card or account is locked",
    "13": "Wrong one-time password",
    "24": "Transaction cancelled by customer",
    "51": "Insufficient balance",
    "65": "Daily transaction limit exceeded",
    "75": "Payment bank is under maintenance",
    "79": "Wrong payment password entered too many times",
    "99": "Unknown error",
}

# querydr request / response checksum fields, in signing order
QUERY_REQUEST_FIELDS = (
    "vnp_RequestId", "vnp_Version", "vnp_Command", "vnp_TmnCode", "vnp_TxnRef",
    "vnp_TransactionDate", "vnp_CreateDate", "vnp_IpAddr", "vnp_OrderInfo",
)
QUERY_RESPONSE_FIELDS = (
    "vnp_ResponseId", "vnp_Command", "vnp_ResponseCode", "vnp_Message", "vnp_TmnCode",
    "vnp_TxnRef", "vnp_Amount", "vnp_BankCode", "vnp_PayDate", "vnp_TransactionNo",
    "vnp_TransactionType", "vnp_TransactionStatus", "vnp_OrderInfo", "vnp_PromotionCode",
    "vnp_PromotionAmount",
)


def response_message(code: Optional[str]) -> str:
    return _RESPONSE_MESSAGES.get(code or "", "Payment failed")


def format_vnp_date(value: datetime) -> str:
    """yyyyMMddHHmmss in GMT+7, the only format VNPay accepts."""
    return as_utc(value).astimezone(VN_TZ).strftime("%Y%m%d%H%M%S")


def txn_ref_for(ticket: Ticket) -> str:
    return f"{TXN_PREFIX}{ticket.id}"


def parse_txn_ref(txn_ref: Optional[str]) -> Optional[UUID]:
    if not txn_ref or not txn_ref.startswith(TXN_PREFIX):
        return None
    try:
        return UUID(txn_ref[len(TXN_PREFIX):])
    except ValueError:
        return None


def encode_params(params: Mapping[str, str], exclude: Sequence[str] = ()) -> str:
    """Sorted `k=v&...` with quote_plus values; empty values are dropped."""
    items = sorted(
        (k, str(v)) for k, v in params.items()
        if k not in exclude and v is not None and str(v) != ""
    )
    return "&".join(f"{k}={quote_plus(v)}" for k, v in items)


def _hmac_sha512(secret: str, data: str) -> str:
    return hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha512).hexdigest()


# ---------------------------------------------------------------------------
# Signature strategies
# ---------------------------------------------------------------------------


class SignatureStrategy:
    """Signs a parameter mapping and checks a signature against it."""

    def sign(self, params: Mapping[str, str]) -> str:
        raise NotImplementedError

    def verify(self, params: Mapping[str, str], signature: Optional[str]) -> bool:
        if not signature:
            return False
        expected = self.sign(params)
        return hmac.compare_digest(expected.lower(), signature.lower())


class VNPayQuerySigner(SignatureStrategy):
    EXCLUDED = ("vnp_SecureHash", "vnp_SecureHashType")

    def __init__(self, secret: str):
        self.secret = secret

    def sign(self, params: Mapping[str, str]) -> str:
        return _hmac_sha512(self.secret, encode_params(params, self.EXCLUDED))


class PipeSigner(SignatureStrategy):
    def __init__(self, secret: str, fields: Sequence[str]):
        self.secret = secret
        self.fields = tuple(fields)

    def sign(self, params: Mapping[str, str]) -> str:
        data = "|".join("" if params.get(f) is None else str(params.get(f)) for f in self.fields)
        return _hmac_sha512(self.secret, data)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class VNPayGateway:
    def __init__(
        self,
        tmn_code: str,
        hash_secret: str,
        payment_url: str,
        api_url: str,
        return_url: str,
        locale: str = "vn",
        timeout: float = 10.0,
        signer: Optional[SignatureStrategy] = None,
        http: Optional[requests.Session] = None,
    ):
        self.tmn_code = tmn_code
        self.hash_secret = hash_secret
        self.payment_url = payment_url
        self.api_url = api_url
        self.return_url = return_url
        self.locale = locale
        self.timeout = timeout
        self.signer = signer or VNPayQuerySigner(hash_secret)
        self.http = http or requests.Session()

    @classmethod
    def from_settings(cls) -> "VNPayGateway":
        return cls(
            tmn_code=settings.VNPAY_TMN_CODE,
            hash_secret=settings.VNPAY_HASH_SECRET,
            payment_url=settings.VNPAY_PAYMENT_URL,
            api_url=settings.VNPAY_API_URL,
            return_url=settings.VNPAY_RETURN_URL,
            locale=settings.VNPAY_LOCALE,
            timeout=settings.VNPAY_TIMEOUT_SECONDS,
        )

    def _require_config(self) -> None:
        if not self.tmn_code or not self.hash_secret:
            raise GatewayError("Payment gateway is not configured")

    def build_payment_url(self, ticket: Ticket, client_ip: str, now: Optional[datetime] = None) -> str:
        self._require_config()
        now = now or utcnow()
        expires_at = as_utc(ticket.expires_at) if ticket.expires_at else now + timedelta(
            minutes=settings.HOLD_MINUTES
        )

        params: Dict[str, str] = {
            "vnp_Version": VNP_VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.tmn_code,
            "vnp_Amount": str(to_gateway_amount(ticket.final_amount)),
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": txn_ref_for(ticket),
            "vnp_OrderInfo": f"Thanh toan ve xem phim {ticket.tickets_code}",
            "vnp_OrderType": "other",
            "vnp_Locale": self.locale,
            "vnp_ReturnUrl": self.return_url,
            "vnp_IpAddr": client_ip,
            "vnp_CreateDate": format_vnp_date(now),
            "vnp_ExpireDate": format_vnp_date(expires_at),
        }
        signature = self.signer.sign(params)
        return f"{self.payment_url}?{encode_params(params)}&vnp_SecureHash={signature}"

    def verify_callback(self, params: Mapping[str, str]) -> bool:
        if any(not params.get(name) for name in REQUIRED_CALLBACK_PARAMS):
            return False
        return self.signer.verify(params, params.get("vnp_SecureHash"))

    def query_transaction(
        self,
        ticket: Ticket,
        client_ip: str,
        transaction_date: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """Ask VNPay for the status of the ticket's transaction (querydr)."""
        self._require_config()
        now = now or utcnow()
        body = {
            "vnp_RequestId": uuid.uuid4().hex[:32],
            "vnp_Version": VNP_VERSION,
            "vnp_Command": "querydr",
            "vnp_TmnCode": self.tmn_code,
            "vnp_TxnRef": txn_ref_for(ticket),
            "vnp_OrderInfo": f"Truy van giao dich {ticket.tickets_code}",
            "vnp_TransactionDate": transaction_date or format_vnp_date(ticket.created_at or now),
            "vnp_CreateDate": format_vnp_date(now),
            "vnp_IpAddr": client_ip,
        }
        body["vnp_SecureHash"] = PipeSigner(self.hash_secret, QUERY_REQUEST_FIELDS).sign(body)

        try:
            response = self.http.post(self.api_url, json=body, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.Timeout, requests.ConnectionError) as exc:
            logger.warning("VNPay querydr for %s failed: %s", body["vnp_TxnRef"], exc)
            raise GatewayUnavailableError()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("VNPay querydr for %s returned an unusable response: %s", body["vnp_TxnRef"], exc)
            raise GatewayUnavailableError()

        checker = PipeSigner(self.hash_secret, QUERY_RESPONSE_FIELDS)
        if not checker.verify(data, data.get("vnp_SecureHash")):
            logger.warning("VNPay querydr response for %s has an invalid checksum.", body["vnp_TxnRef"])
            raise InvalidSignatureError()
        return data
