import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.domain.clock import Clock, has_departed, utc_now
from src.domain.exceptions import (
    ExpiredError,
    InsufficientInventoryError,
    InvalidStateTransitionError,
    OversoldConflictError,
    OwnershipMismatchError,
    PaymentAmountMismatchError,
)
from src.domain.payments import PaymentConfirmation, to_money
from src.domain.state_machine import BookingStateMachine, BookingStatus
from src.infrastructure.db.models import Booking, PaymentLedgerEntry
from src.infrastructure.db.session import atomic
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.ledger_repository import LedgerRepository
from src.infrastructure.repositories.ticket_repository import InventoryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationResult:
    entry: PaymentLedgerEntry
    already_processed: bool


class PaymentReconciler:
    """
    Applies a payment confirmation exactly once.

    The ledger row, the ACCEPTED -> PAID move and the inventory decrement
    share one transaction. The ledger row is written first so its unique
    external transaction id decides which of two concurrent deliveries
    wins; the loser rolls back everything it did.
    """

    def __init__(
        self,
        db: Session,
        inventory: InventoryStore,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.inventory = inventory
        self.clock = clock
        self.booking_repository = BookingRepository(db)
        self.ledger_repository = LedgerRepository(db)

    def reconcile(self, confirmation: PaymentConfirmation) -> ReconciliationResult:
        existing = self.ledger_repository.get_by_external_id(
            confirmation.external_transaction_id
        )
        if existing:
            return self._replayed(existing, confirmation)

        try:
            with atomic(self.db):
                entry_id = self._settle(confirmation)
        except IntegrityError:
            existing = self.ledger_repository.get_by_external_id(
                confirmation.external_transaction_id
            )
            if not existing:
                raise
            return self._replayed(existing, confirmation)
        except InvalidStateTransitionError:
            # A concurrent delivery of the same payment may have just
            # moved the booking to PAID.
            existing = self.ledger_repository.get_by_external_id(
                confirmation.external_transaction_id
            )
            if not existing:
                raise
            return self._replayed(existing, confirmation)

        entry = self.db.get(PaymentLedgerEntry, entry_id)
        logger.info(
            "Payment settled. tx=%s booking_id=%s amount=%s %s",
            entry.external_transaction_id,
            entry.booking_id,
            entry.amount,
            entry.currency,
        )
        return ReconciliationResult(entry=entry, already_processed=False)

    def _settle(self, confirmation: PaymentConfirmation) -> str:
        booking = self.booking_repository.require(confirmation.booking_id)
        self._validate(booking, confirmation)

        entry = self.ledger_repository.insert(
            PaymentLedgerEntry(
                external_transaction_id=confirmation.external_transaction_id,
                booking_id=booking.id,
                ticket_id=booking.ticket_id,
                ticket_title=booking.ticket_title,
                amount=to_money(confirmation.settled_amount),
                currency=confirmation.currency.upper(),
                quantity=booking.quantity,
                user_email=booking.user_email,
                vendor_email=booking.vendor_email,
                settled_at=self.clock(),
            )
        )

        moved = self.booking_repository.transition_if(
            booking.id,
            from_status=BookingStatus.ACCEPTED,
            to_status=BookingStatus.PAID,
            payment_transaction_id=confirmation.external_transaction_id,
        )
        if not moved:
            raise InvalidStateTransitionError(
                from_state=booking.status.value,
                to_state=BookingStatus.PAID.value,
            )

        try:
            remaining = self.inventory.decrement_if_available(
                booking.ticket_id,
                booking.quantity,
            )
        except InsufficientInventoryError as exc:
            logger.warning(
                "Oversold at settlement; payment must be refunded. tx=%s booking_id=%s requested=%s available=%s",
                confirmation.external_transaction_id,
                booking.id,
                exc.requested,
                exc.available,
            )
            raise OversoldConflictError(
                booking.ticket_id,
                exc.requested,
                exc.available,
            ) from exc

        logger.debug("Ticket %s has %s left", booking.ticket_id, remaining)
        return entry.id

    def _validate(self, booking: Booking, confirmation: PaymentConfirmation) -> None:
        if booking.user_email != confirmation.payer_email:
            raise OwnershipMismatchError(
                f"Payer {confirmation.payer_email} does not own booking {booking.id}"
            )

        BookingStateMachine.validate_transition(booking.status, BookingStatus.PAID)

        if has_departed(booking.departure_at, self.clock()):
            raise ExpiredError(f"Ticket for booking {booking.id} has already departed")

        expected = to_money(booking.total_price)
        settled = to_money(confirmation.settled_amount)
        if expected != settled:
            raise PaymentAmountMismatchError(expected, settled)

    def _replayed(
        self,
        entry: PaymentLedgerEntry,
        confirmation: PaymentConfirmation,
    ) -> ReconciliationResult:
        if entry.booking_id != confirmation.booking_id:
            logger.warning(
                "Replayed tx=%s names booking %s but was settled for %s",
                entry.external_transaction_id,
                confirmation.booking_id,
                entry.booking_id,
            )
        else:
            logger.warning(
                "Duplicate payment confirmation ignored. tx=%s booking_id=%s",
                entry.external_transaction_id,
                entry.booking_id,
            )
        return ReconciliationResult(entry=entry, already_processed=True)
