from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP


@dataclass(frozen=True)
class PaymentConfirmation:
    """A settled payment as reported by the gateway, ready for reconciliation."""

    external_transaction_id: str
    booking_id: str
    settled_amount: Decimal
    currency: str
    payer_email: str


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    # Gateway amounts are integers in the smallest currency unit.
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return to_money(Decimal(amount) / 100)
