from decimal import Decimal

import jwt
import pytest
from fastapi.testclient import TestClient

from src.api.deps import get_gateway
from src.domain.exceptions import InvalidInputError
from src.domain.payments import PaymentConfirmation, to_minor_units
from src.infrastructure import settings
from src.main import app


class FakeGateway:
    """Stands in for razorpay: orders are remembered, payments are captured on demand."""

    key_id = "rzp_test_key"

    def __init__(self):
        self.orders: dict[str, dict] = {}
        self.payments: dict[str, dict] = {}

    def create_order(self, booking) -> dict:
        order_id = f"order_{len(self.orders) + 1}"
        amount = to_minor_units(booking.total_price)
        self.orders[order_id] = {"booking_id": booking.id, "amount": amount}
        return {"order_id": order_id, "amount": amount, "currency": "INR", "key_id": self.key_id}

    def capture(self, order_id: str, payment_id: str, amount: int | None = None) -> None:
        order = self.orders[order_id]
        self.payments[payment_id] = {
            "order_id": order_id,
            "amount": order["amount"] if amount is None else amount,
        }

    def fetch_confirmation(self, order_id, payment_id, signature, payer_email) -> PaymentConfirmation:
        if signature != "valid":
            raise InvalidInputError("Invalid payment signature")
        payment = self.payments[payment_id]
        order = self.orders[order_id]
        return PaymentConfirmation(
            external_transaction_id=payment_id,
            booking_id=order["booking_id"],
            settled_amount=Decimal(payment["amount"]) / 100,
            currency="INR",
            payer_email=payer_email,
        )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(gateway):
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def _headers(email: str) -> dict:
        token = jwt.encode({"sub": email}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
        return {"Authorization": f"Bearer {token}"}

    return _headers
