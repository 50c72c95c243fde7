import os

# Settings are read at import time; point them at throwaway values first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["VNPAY_TMN_CODE"] = "TESTTMN1"
os.environ["VNPAY_HASH_SECRET"] = "TESTHASHSECRET"
os.environ["HOLD_MINUTES"] = "5"

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_gateway
from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models import (
    Account, Cinema, Room, Movie, Slot, SeatType, Seat, Product,
    Promotion, DiscountType, PromotionStatus,
)
from app.services.vnpay import VNPayGateway, txn_ref_for
from app.utils.money import to_gateway_amount
from app.utils.clock import utcnow


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    """A fresh schema per test on a single shared in-memory connection."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def second_session(db):
    """Another session on the same database, for interleaving two requests."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return VNPayGateway(
        tmn_code="TESTTMN1",
        hash_secret="TESTHASHSECRET",
        payment_url="https://sandbox.vnpayment.vn/paymentv2/vpcpay.html",
        api_url="https://sandbox.vnpayment.vn/merchant_webapi/api/transaction",
        return_url="http://testserver/api/v1/payments/vnpay/return",
    )


@pytest.fixture
def client(db, gateway):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    # Not used as a context manager: the lifespan would try to reach Postgres
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seed(db):
    """Cinema, room with standard/VIP/broken seats, one showtime, combos and promotions."""
    now = utcnow()

    user = Account(email="user@example.com", full_name="Test User")
    other = Account(email="other@example.com", full_name="Other User")
    admin = Account(email="admin@example.com", full_name="Admin", role="admin")
    db.add_all([user, other, admin])

    cinema = Cinema(cinema_name="CGV Vincom", city="Ha Noi", address="54 Nguyen Chi Thanh")
    db.add(cinema)
    db.flush()
    room = Room(cinema_id=cinema.id, room_name="Cinema 1", capacity=11)
    other_room = Room(cinema_id=cinema.id, room_name="Cinema 2", capacity=1)
    db.add_all([room, other_room])

    standard = SeatType(type_name="standard", price_multiplier=Decimal("1.00"))
    vip = SeatType(type_name="vip", price_multiplier=Decimal("1.20"))
    db.add_all([standard, vip])
    db.flush()

    seats = {}
    for number in range(1, 6):
        seats[f"A{number}"] = Seat(room_id=room.id, seat_type_id=standard.id, seat_row="A", seat_number=number)
        seats[f"B{number}"] = Seat(room_id=room.id, seat_type_id=vip.id, seat_row="B", seat_number=number)
    seats["C1"] = Seat(room_id=room.id, seat_type_id=standard.id, seat_row="C", seat_number=1, status="broken")
    seats["X1"] = Seat(room_id=other_room.id, seat_type_id=standard.id, seat_row="X", seat_number=1)
    db.add_all(seats.values())

    movie = Movie(title="Dune: Part Two", duration_minutes=166)
    db.add(movie)
    db.flush()

    slot = Slot(
        movie_id=movie.id,
        room_id=room.id,
        show_time=now + timedelta(days=1),
        end_time=now + timedelta(days=1, hours=3),
        price=Decimal("90000"),
        empty_seats=10,
    )
    combo = Product(product_name="Combo Popcorn", category="combo", price=Decimal("35000"))
    drink = Product(product_name="Coca Cola", category="drink", price=Decimal("20000"))
    retired = Product(product_name="Old Combo", category="combo", price=Decimal("10000"), is_active=False)
    db.add_all([slot, combo, drink, retired])

    def promotion(code, discount_type, value, **kwargs):
        fields = dict(
            promotion_code=code,
            promotion_name=code.title(),
            discount_type=discount_type,
            discount_value=Decimal(value),
            min_order_amount=Decimal("0"),
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=30),
            status=PromotionStatus.ACTIVE,
        )
        fields.update(kwargs)
        return Promotion(**fields)

    promotions = SimpleNamespace(
        welcome=promotion("WELCOME10", DiscountType.PERCENTAGE, "10", max_discount_amount=Decimal("15000")),
        fixed=promotion("FIXED50K", DiscountType.FIXED_AMOUNT, "50000"),
        big_order=promotion("BIGORDER", DiscountType.FIXED_AMOUNT, "20000", min_order_amount=Decimal("500000")),
        limited=promotion("LIMIT1", DiscountType.FIXED_AMOUNT, "10000", usage_limit=1),
        ended=promotion("SUMMER", DiscountType.PERCENTAGE, "20", end_date=now - timedelta(days=1)),
        paused=promotion("PAUSED", DiscountType.PERCENTAGE, "5", status=PromotionStatus.INACTIVE),
    )
    db.add_all(vars(promotions).values())
    db.commit()

    return SimpleNamespace(
        user=user,
        other=other,
        admin=admin,
        room=room,
        standard=standard,
        vip=vip,
        seats=seats,
        movie=movie,
        slot=slot,
        combo=combo,
        drink=drink,
        retired=retired,
        promotions=promotions,
    )


def _auth(account):
    return {"Authorization": f"Bearer {create_access_token(str(account.id))}"}


@pytest.fixture
def user_headers(seed):
    return _auth(seed.user)


@pytest.fixture
def other_headers(seed):
    return _auth(seed.other)


@pytest.fixture
def admin_headers(seed):
    return _auth(seed.admin)


@pytest.fixture
def make_callback(gateway):
    """Build a signed VNPay return/IPN query for a ticket."""

    def build(ticket, response_code="00", amount=None, **overrides):
        params = {
            "vnp_TmnCode": gateway.tmn_code,
            "vnp_Amount": str(to_gateway_amount(ticket.final_amount) if amount is None else amount),
            "vnp_BankCode": "NCB",
            "vnp_BankTranNo": "VNP14226112",
            "vnp_CardType": "ATM",
            "vnp_OrderInfo": f"Thanh toan ve xem phim {ticket.tickets_code}",
            "vnp_PayDate": "20261019153000",
            "vnp_ResponseCode": response_code,
            "vnp_TransactionNo": "14226112",
            "vnp_TransactionStatus": "00" if response_code == "00" else "02",
            "vnp_TxnRef": txn_ref_for(ticket),
        }
        params.update(overrides)
        params["vnp_SecureHash"] = gateway.signer.sign(params)
        return params

    return build


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeHttp:
    """Stands in for the gateway's requests.Session and records each POST."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append(SimpleNamespace(url=url, json=json, timeout=timeout))
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def fake_http():
    def build(payload=None, error=None, status_code=200):
        response = FakeResponse(payload, status_code) if payload is not None else None
        return FakeHttp(response=response, error=error)

    return build
