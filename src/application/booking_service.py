import logging

from sqlalchemy.orm import Session

from src.domain.clock import Clock, has_departed, utc_now
from src.domain.exceptions import (
    ForbiddenError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    InsufficientInventoryError,
    TicketUnavailableError,
)
from src.domain.state_machine import BookingStateMachine, BookingStatus, VerificationStatus
from src.infrastructure.db.models import Booking, Ticket
from src.infrastructure.db.session import atomic
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.ticket_repository import InventoryStore

logger = logging.getLogger(__name__)


class BookingService:
    """Application service coordinating the booking workflow up to acceptance."""

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

    def create_booking(
        self,
        ticket_id: str,
        user_email: str,
        quantity: int,
    ) -> Booking:
        """
        Validates against the ticket's current state and snapshots its
        price and route. No inventory is held until settlement.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantityError(quantity)

        with atomic(self.db):
            ticket = self.inventory.get(ticket_id)
            self._ensure_bookable(ticket)
            self.inventory.ensure_available(ticket_id, quantity)

            booking = self.booking_repository.create_booking(
                ticket=ticket,
                user_email=user_email,
                quantity=quantity,
            )
            booking_id = booking.id

        logger.info(
            "Booking created. booking_id=%s ticket_id=%s user=%s quantity=%s",
            booking_id,
            ticket_id,
            user_email,
            quantity,
        )
        return self.booking_repository.require(booking_id)

    def accept_booking(self, booking_id: str, vendor_email: str) -> Booking:
        with atomic(self.db):
            booking = self._owned_pending(booking_id, vendor_email, BookingStatus.ACCEPTED)

            # Visibility, departure and availability may have changed since creation.
            ticket = self.inventory.get(booking.ticket_id)
            self._ensure_bookable(ticket)
            if ticket.quantity < booking.quantity:
                raise InsufficientInventoryError(ticket.id, booking.quantity, ticket.quantity)

            self._transition(booking, BookingStatus.ACCEPTED)

        logger.info("Booking accepted. booking_id=%s vendor=%s", booking_id, vendor_email)
        return self.booking_repository.require(booking_id)

    def reject_booking(self, booking_id: str, vendor_email: str) -> Booking:
        with atomic(self.db):
            booking = self._owned_pending(booking_id, vendor_email, BookingStatus.REJECTED)
            self._transition(booking, BookingStatus.REJECTED)

        logger.info("Booking rejected. booking_id=%s vendor=%s", booking_id, vendor_email)
        return self.booking_repository.require(booking_id)

    def get_booking(self, booking_id: str) -> Booking:
        return self.booking_repository.require(booking_id)

    def list_for_user(self, user_email: str) -> list[Booking]:
        return self.booking_repository.list_for_user(user_email)

    def list_for_vendor(self, vendor_email: str) -> list[Booking]:
        return self.booking_repository.list_for_vendor(vendor_email)

    def _ensure_bookable(self, ticket: Ticket) -> None:
        approved = (
            ticket.admin_approved
            and ticket.verification_status == VerificationStatus.APPROVED
        )
        if not approved or ticket.hidden_for_fraud:
            raise TicketUnavailableError(f"Ticket {ticket.id} is not open for booking")
        if has_departed(ticket.departure_at, self.clock()):
            raise TicketUnavailableError(f"Ticket {ticket.id} has already departed")

    def _owned_pending(
        self,
        booking_id: str,
        vendor_email: str,
        to_status: BookingStatus,
    ) -> Booking:
        booking = self.booking_repository.require(booking_id)

        if booking.vendor_email != vendor_email:
            raise ForbiddenError(f"Booking {booking_id} belongs to another vendor")

        BookingStateMachine.validate_transition(booking.status, to_status)
        return booking

    def _transition(self, booking: Booking, to_status: BookingStatus) -> None:
        moved = self.booking_repository.transition_if(
            booking.id,
            from_status=booking.status,
            to_status=to_status,
        )
        if not moved:
            # Lost the race against a concurrent decision.
            raise InvalidStateTransitionError(
                from_state=booking.status.value,
                to_state=to_status.value,
            )
