from datetime import datetime
from decimal import Decimal

import pytest

from app import create_app
from app.config import TestConfig
from db.extensions import db
from models.booking import Booking, PENDING, MODE_SUBSCRIPTION
from models.coupon import Coupon, CouponScope, TYPE_PERCENTAGE
from models.resource import Resource, RESOURCE_ACTIVE
from services.payment_service import PaymentConfirmation
from utils.errors import PaymentError, AMOUNT_MISMATCH


class FakeGateway:
    def __init__(self, fail_verify=False, paid_amount=None):
        self.fail_verify = fail_verify
        # amount the provider order was opened for; None accepts any amount
        self.paid_amount = paid_amount
        self.orders = []
        self.verified = []

    def create_order(self, amount, currency, receipt):
        self.orders.append({"amount": amount, "currency": currency, "receipt": receipt})
        return f"order_{len(self.orders)}"

    def verify(self, confirmation, amount):
        if self.fail_verify:
            raise PaymentError("Invalid payment signature")
        if self.paid_amount is not None and Decimal(str(self.paid_amount)) != amount:
            raise PaymentError("Payment amount does not match the booking total", reason=AMOUNT_MISMATCH)
        self.verified.append(confirmation)
        return confirmation.payment_id


class FakeNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def __call__(self, user_id, event, booking_id, metadata=None):
        self.calls.append((user_id, event, booking_id, metadata))
        if self.fail:
            raise RuntimeError("notification sink down")

    @property
    def events(self):
        return [c[1] for c in self.calls]


@pytest.fixture
def app():
    app, _ = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def gateway(app):
    fake = FakeGateway()
    app.extensions["payment_gateway"] = fake
    return fake


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def broken_notifier():
    return FakeNotifier(fail=True)


@pytest.fixture
def confirmation():
    return PaymentConfirmation(order_id="order_1", payment_id="pay_1", signature="sig")


@pytest.fixture
def make_resource(app):
    def _make(name="Kiosk", base_rate="100", status=RESOURCE_ACTIVE, location="Mall"):
        resource = Resource(name=name, base_rate=Decimal(str(base_rate)), status=status, location=location)
        db.session.add(resource)
        db.session.commit()
        return resource
    return _make


@pytest.fixture
def make_booking(app):
    def _make(resource_ids, start_date, end_date, status=PENDING, owner_id=1,
              total_cost="100", slots=1, owner_email=None, name="Campaign"):
        booking = Booking(
            owner_id=owner_id,
            owner_email=owner_email,
            name=name,
            booking_mode=MODE_SUBSCRIPTION,
            start_date=start_date,
            end_date=end_date,
            total_slots=slots,
            duration_months=1,
            total_cost=Decimal(str(total_cost)),
            status=status,
        )
        booking.set_resources(resource_ids)
        db.session.add(booking)
        db.session.commit()
        return booking
    return _make


@pytest.fixture
def make_coupon(app):
    def _make(code="SAVE10", type=TYPE_PERCENTAGE, value="10", max_uses=10, current_uses=0,
              min_amount=None, valid_from=datetime(2000, 1, 1), valid_until=datetime(2100, 1, 1),
              is_active=True, scopes=()):
        coupon = Coupon(
            code=code, type=type, value=Decimal(str(value)), max_uses=max_uses,
            current_uses=current_uses,
            min_amount=Decimal(str(min_amount)) if min_amount is not None else None,
            valid_from=valid_from, valid_until=valid_until, is_active=is_active,
            scopes=[CouponScope(scope_type=t, scope_value=str(v)) for t, v in scopes],
        )
        db.session.add(coupon)
        db.session.commit()
        return coupon
    return _make
