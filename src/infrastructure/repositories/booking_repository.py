# src/infrastructure/repositories/booking_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from src.infrastructure.db.models import Booking, Ticket
from src.domain.exceptions import NotFoundError
from src.domain.payments import to_money
from src.domain.state_machine import BookingStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def require(self, booking_id: str) -> Booking:
        booking = self.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    def create_booking(
        self,
        ticket: Ticket,
        user_email: str,
        quantity: int,
    ) -> Booking:
        unit_price = to_money(ticket.unit_price)

        booking = Booking(
            ticket_id=ticket.id,
            user_email=user_email,
            vendor_email=ticket.vendor_email,
            ticket_title=ticket.title,
            origin=ticket.origin,
            destination=ticket.destination,
            departure_at=ticket.departure_at,
            quantity=quantity,
            unit_price=unit_price,
            total_price=to_money(unit_price * quantity),
            status=BookingStatus.PENDING,
        )

        self.db.add(booking)
        self.db.flush()
        return booking

    def transition_if(
        self,
        booking_id: str,
        from_status: BookingStatus,
        to_status: BookingStatus,
        **values,
    ) -> bool:
        """
        Compare-and-set on status. False means another request
        moved the booking first.
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.status == from_status)
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def list_for_user(self, user_email: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.user_email == user_email)
            .order_by(Booking.created_at.desc(), Booking.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_vendor(self, vendor_email: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.vendor_email == vendor_email)
            .order_by(Booking.created_at.desc(), Booking.id)
        )
        return list(self.db.execute(stmt).scalars().all())
