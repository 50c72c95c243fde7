from decimal import Decimal
from urllib.parse import parse_qsl, urlsplit

import pytest

from app.models import Payment
from app.models.ticket import PaymentStatus, TicketStatus
from app.services.reservations import create_reservation

RETURN_URL = "/api/v1/payments/vnpay/return"
IPN_URL = "/api/v1/payments/vnpay/ipn"


@pytest.fixture
def ticket(db, seed):
    return create_reservation(
        db,
        seed.user.id,
        seed.slot.id,
        [seed.seats["B1"].id],
        products=[(seed.combo.id, 2)],
        promotion_code="WELCOME10",
    )


def _location(response):
    parts = urlsplit(response.headers["location"])
    return f"{parts.scheme}://{parts.netloc}{parts.path}", dict(parse_qsl(parts.query))


def test_create_payment_url(client, db, ticket, user_headers):
    response = client.post(
        "/api/v1/payments/vnpay/create",
        json={"ticket_id": str(ticket.id)},
        headers={**user_headers, "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["order_id"] == f"BOOKING_{ticket.id}"
    query = dict(parse_qsl(urlsplit(data["payment_url"]).query))
    assert query["vnp_Amount"] == "16300000"
    assert query["vnp_IpAddr"] == "203.0.113.7"
    assert db.query(Payment).one().status == "created"


def test_create_payment_for_someone_elses_ticket_is_not_found(client, ticket, other_headers):
    response = client.post(
        "/api/v1/payments/vnpay/create", json={"ticket_id": str(ticket.id)}, headers=other_headers
    )
    assert response.status_code == 404


def test_return_success_redirects_to_storefront(client, db, ticket, make_callback):
    response = client.get(RETURN_URL, params=make_callback(ticket), follow_redirects=False)

    assert response.status_code == 307
    base, query = _location(response)
    assert base == "http://frontend.test/cgv"
    assert query == {"payment": "success", "orderId": f"BOOKING_{ticket.id}"}
    db.refresh(ticket)
    assert ticket.status == TicketStatus.CONFIRMED
    assert ticket.payment_status == PaymentStatus.PAID


def test_return_cancelled_by_customer_redirects_with_reason(client, db, ticket, make_callback):
    response = client.get(RETURN_URL, params=make_callback(ticket, response_code="24"), follow_redirects=False)

    base, query = _location(response)
    assert base == "http://frontend.test/payment/failed"
    assert query["responseCode"] == "24"
    assert query["message"] == "Transaction cancelled by customer"
    db.refresh(ticket)
    assert ticket.status == TicketStatus.CANCELLED


def test_return_with_tampered_signature(client, db, ticket, make_callback):
    params = make_callback(ticket)
    params["vnp_Amount"] = "100"

    base, query = _location(client.get(RETURN_URL, params=params, follow_redirects=False))

    assert base == "http://frontend.test/payment/failed"
    assert query["error"] == "invalid_signature"
    db.refresh(ticket)
    assert ticket.status == TicketStatus.PENDING


def test_return_without_params(client, seed):
    _, query = _location(client.get(RETURN_URL, follow_redirects=False))
    assert query == {"error": "missing_params", "orderId": "unknown"}


def test_return_with_wrong_amount(client, ticket, make_callback):
    _, query = _location(client.get(RETURN_URL, params=make_callback(ticket, amount=100), follow_redirects=False))
    assert query["error"] == "invalid_amount"


def test_ipn_confirms_once_then_reports_already_confirmed(client, db, ticket, make_callback):
    params = make_callback(ticket)

    first = client.get(IPN_URL, params=params).json()
    second = client.get(IPN_URL, params=params).json()

    assert first == {"RspCode": "00", "Message": "Confirm Success"}
    assert second["RspCode"] == "02"
    db.refresh(ticket)
    assert ticket.payment_status == PaymentStatus.PAID


def test_ipn_error_codes(client, ticket, make_callback):
    tampered = make_callback(ticket)
    tampered["vnp_ResponseCode"] = "24"
    assert client.get(IPN_URL, params=tampered).json()["RspCode"] == "97"

    unknown = make_callback(ticket, vnp_TxnRef="BOOKING_6f1c9a8e-8f0e-4f53-9d7c-0f3c2d1b9a11")
    assert client.get(IPN_URL, params=unknown).json()["RspCode"] == "01"

    assert client.get(IPN_URL, params=make_callback(ticket, amount=1)).json()["RspCode"] == "04"
    assert client.get(IPN_URL).json()["RspCode"] == "97"


def test_voucher_activation_and_listing(client, seed, user_headers):
    created = client.post("/api/v1/vouchers/activate", json={"promotion_code": "fixed50k"}, headers=user_headers)

    assert created.status_code == 201
    assert created.json()["state"] == "activated"
    assert created.json()["promotion"]["promotion_code"] == "FIXED50K"

    again = client.post("/api/v1/vouchers/activate", json={"promotion_code": "FIXED50K"}, headers=user_headers)
    assert again.status_code == 409
    assert again.json()["error"] == "promotion_already_used"

    listing = client.get("/api/v1/vouchers/", headers=user_headers).json()
    assert [v["promotion"]["promotion_code"] for v in listing] == ["FIXED50K"]


def test_voucher_errors(client, seed, user_headers):
    expired = client.post("/api/v1/vouchers/activate", json={"promotion_code": "SUMMER"}, headers=user_headers)
    assert expired.json()["error"] == "promotion_expired"

    unknown = client.post("/api/v1/vouchers/activate", json={"promotion_code": "NOPE"}, headers=user_headers)
    assert unknown.status_code == 404


def test_booking_with_activated_voucher_by_id(client, seed, user_headers):
    client.post("/api/v1/vouchers/activate", json={"promotion_code": "FIXED50K"}, headers=user_headers)

    response = client.post(
        "/api/v1/bookings/",
        json={
            "slotId": str(seed.slot.id),
            "seats": [str(seed.seats["A1"].id)],
            "voucher_id": str(seed.promotions.fixed.id),
        },
        headers=user_headers,
    )

    assert response.status_code == 201
    assert Decimal(response.json()["final_amount"]) == Decimal("40000")


def test_admin_promotion_stats_and_activations(client, ticket, make_callback, seed, admin_headers, other_headers):
    client.get(IPN_URL, params=make_callback(ticket))
    client.post("/api/v1/vouchers/activate", json={"promotion_code": "WELCOME10"}, headers=other_headers)
    promotion_id = seed.promotions.welcome.id

    assert client.get(f"/api/v1/admin/promotions/{promotion_id}/stats", headers=other_headers).status_code == 403

    stats = client.get(f"/api/v1/admin/promotions/{promotion_id}/stats", headers=admin_headers).json()
    assert stats["promotion_code"] == "WELCOME10"
    assert stats["usage_count"] == 2
    assert stats["total_usage"] == 1
    assert stats["top_users"][0]["email"] == "user@example.com"

    activations = client.get(f"/api/v1/admin/promotions/{promotion_id}/activations", headers=admin_headers).json()
    assert activations["total"] == 1
    assert activations["data"][0]["account"]["email"] == "other@example.com"
