# src/infrastructure/payments/razorpay_gateway.py

import logging
import os

import razorpay

from src.domain.exceptions import InvalidInputError
from src.domain.payments import PaymentConfirmation, from_minor_units, to_minor_units
from src.infrastructure import settings
from src.infrastructure.db.models import Booking

logger = logging.getLogger(__name__)


class GatewayNotConfiguredError(RuntimeError):
    """Raised when razorpay credentials are missing from the environment."""


class RazorpayGateway:
    """
    Thin pass-through to razorpay: creates the checkout order and turns a
    verified, captured payment into a PaymentConfirmation.
    """

    def __init__(self, client: razorpay.Client | None = None, key_id: str | None = None):
        self._client = client
        self._key_id = key_id

    @property
    def key_id(self) -> str:
        key_id = self._key_id or os.getenv("RAZORPAY_KEY_ID")
        if not key_id:
            raise GatewayNotConfiguredError("Razorpay key id not configured.")
        return key_id

    @property
    def client(self) -> razorpay.Client:
        if self._client is None:
            key_secret = os.getenv("RAZORPAY_KEY_SECRET")
            if not key_secret:
                raise GatewayNotConfiguredError(
                    "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
                )
            self._client = razorpay.Client(auth=(self.key_id, key_secret))
        return self._client

    def create_order(self, booking: Booking) -> dict:
        amount = to_minor_units(booking.total_price)
        order = self.client.order.create(
            {
                "amount": amount,
                "currency": settings.PAYMENT_CURRENCY,
                "receipt": booking.id,
                "notes": {
                    "booking_id": booking.id,
                    "ticket_id": booking.ticket_id,
                    "user_email": booking.user_email,
                },
            }
        )
        logger.info("Checkout order created. booking_id=%s order_id=%s", booking.id, order.get("id"))
        return {
            "order_id": order.get("id"),
            "amount": amount,
            "currency": settings.PAYMENT_CURRENCY,
            "key_id": self.key_id,
        }

    def fetch_confirmation(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        payer_email: str,
    ) -> PaymentConfirmation:
        try:
            self.client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": order_id,
                    "razorpay_payment_id": payment_id,
                    "razorpay_signature": signature,
                }
            )
        except razorpay.errors.SignatureVerificationError as exc:
            logger.warning("Invalid payment signature. order_id=%s payment_id=%s", order_id, payment_id)
            raise InvalidInputError("Invalid payment signature") from exc

        order = self.client.order.fetch(order_id)
        payment = self.client.payment.fetch(payment_id)

        if payment.get("order_id") != order_id:
            raise InvalidInputError("Payment does not belong to this order")
        if payment.get("status") != "captured":
            raise InvalidInputError(f"Payment is not settled yet (status={payment.get('status')})")

        booking_id = (order.get("notes") or {}).get("booking_id") or order.get("receipt")
        if not booking_id:
            raise InvalidInputError("Order carries no booking correlation")

        return PaymentConfirmation(
            external_transaction_id=payment_id,
            booking_id=booking_id,
            settled_amount=from_minor_units(int(payment.get("amount", 0))),
            currency=payment.get("currency") or settings.PAYMENT_CURRENCY,
            payer_email=payer_email,
        )
