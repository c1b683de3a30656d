# src/infrastructure/repositories/ticket_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import case, select, update, func

from src.infrastructure.db.models import SLOT_POOL_ID, AdvertisementSlotPool, Ticket
from src.infrastructure import settings
from src.domain.exceptions import InsufficientInventoryError, NotFoundError
from src.domain.state_machine import VerificationStatus


def is_publicly_approved():
    return (
        (Ticket.verification_status == VerificationStatus.APPROVED)
        & Ticket.admin_approved.is_(True)
    )


class InventoryStore:
    """
    Ticket quantities and visibility flags.

    Every mutating method is a single conditional UPDATE so the
    check and the write cannot interleave with another request.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, ticket_id: str) -> Ticket:
        ticket = self.db.get(Ticket, ticket_id)
        if not ticket:
            raise NotFoundError("Ticket", ticket_id)
        return ticket

    def add(self, ticket: Ticket) -> Ticket:
        self.db.add(ticket)
        self.db.flush()
        return ticket

    def ensure_available(self, ticket_id: str, quantity: int) -> Ticket:
        """
        Read-only availability check used when a booking is created.
        Nothing is held; settlement re-checks atomically.
        """
        ticket = self.get(ticket_id)
        if ticket.quantity < quantity:
            raise InsufficientInventoryError(ticket_id, quantity, ticket.quantity)
        return ticket

    def decrement_if_available(self, ticket_id: str, quantity: int) -> int:
        """
        UPDATE ... SET quantity = quantity - n WHERE quantity >= n.
        Returns the remaining quantity.
        """
        stmt = (
            update(Ticket)
            .where(Ticket.id == ticket_id)
            .where(Ticket.quantity >= quantity)
            .values(quantity=Ticket.quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)

        if result.rowcount == 0:
            available = self._current_quantity(ticket_id)
            if available is None:
                raise NotFoundError("Ticket", ticket_id)
            raise InsufficientInventoryError(ticket_id, quantity, available)

        return self._current_quantity(ticket_id)

    def _current_quantity(self, ticket_id: str) -> int | None:
        stmt = select(Ticket.quantity).where(Ticket.id == ticket_id)
        return self.db.execute(stmt).scalar_one_or_none()

    # -----------------------------
    # Advertisement flags
    # -----------------------------
    def count_advertised(self, approved_only: bool = True) -> int:
        stmt = (
            select(func.count())
            .select_from(Ticket)
            .where(Ticket.advertised.is_(True))
            .where(Ticket.hidden_for_fraud.is_(False))
        )
        if approved_only:
            stmt = stmt.where(is_publicly_approved())
        return self.db.execute(stmt).scalar_one()

    def flag_advertised(self, ticket_id: str) -> bool:
        """Sets advertised on an approved, visible, not yet advertised ticket."""
        stmt = (
            update(Ticket)
            .where(Ticket.id == ticket_id)
            .where(Ticket.advertised.is_(False))
            .where(Ticket.hidden_for_fraud.is_(False))
            .where(is_publicly_approved())
            .values(advertised=True)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def unflag_advertised(self, ticket_id: str) -> bool:
        stmt = (
            update(Ticket)
            .where(Ticket.id == ticket_id)
            .where(Ticket.advertised.is_(True))
            .values(advertised=False)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def ensure_slot_pool(self) -> AdvertisementSlotPool:
        """Seeded when the table is created; the insert covers older schemas."""
        pool = self.db.get(AdvertisementSlotPool, SLOT_POOL_ID)
        if pool:
            return pool

        pool = AdvertisementSlotPool(
            id=SLOT_POOL_ID,
            capacity=settings.ADVERTISEMENT_SLOT_CAPACITY,
            used=0,
        )
        self.db.add(pool)
        self.db.flush()
        return pool

    def claim_slot(self) -> bool:
        stmt = (
            update(AdvertisementSlotPool)
            .where(AdvertisementSlotPool.id == SLOT_POOL_ID)
            .where(AdvertisementSlotPool.used < AdvertisementSlotPool.capacity)
            .values(used=AdvertisementSlotPool.used + 1)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def release_slots(self, count: int) -> None:
        if count <= 0:
            return
        stmt = (
            update(AdvertisementSlotPool)
            .where(AdvertisementSlotPool.id == SLOT_POOL_ID)
            .values(
                used=case(
                    (AdvertisementSlotPool.used >= count, AdvertisementSlotPool.used - count),
                    else_=0,
                )
            )
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)

    # -----------------------------
    # Fraud visibility
    # -----------------------------
    def set_hidden_for_fraud(self, vendor_email: str) -> tuple[int, int]:
        """
        Hides every visible ticket of the vendor and drops their
        advertisement flag. Returns (hidden, unadvertised) counts.
        """
        unadvertised = self.db.execute(
            update(Ticket)
            .where(Ticket.vendor_email == vendor_email)
            .where(Ticket.advertised.is_(True))
            .values(advertised=False)
            .execution_options(synchronize_session=False)
        ).rowcount

        hidden = self.db.execute(
            update(Ticket)
            .where(Ticket.vendor_email == vendor_email)
            .where(Ticket.hidden_for_fraud.is_(False))
            .values(hidden_for_fraud=True)
            .execution_options(synchronize_session=False)
        ).rowcount

        return hidden, unadvertised

    # -----------------------------
    # Read paths
    # -----------------------------
    def list_public(self, limit: int | None = None, newest_first: bool = True) -> list[Ticket]:
        stmt = (
            select(Ticket)
            .where(is_publicly_approved())
            .where(Ticket.hidden_for_fraud.is_(False))
        )
        if newest_first:
            stmt = stmt.order_by(Ticket.created_at.desc(), Ticket.id)
        else:
            stmt = stmt.order_by(Ticket.departure_at, Ticket.id)
        if limit:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def list_advertised(self) -> list[Ticket]:
        stmt = (
            select(Ticket)
            .where(Ticket.advertised.is_(True))
            .where(Ticket.hidden_for_fraud.is_(False))
            .where(is_publicly_approved())
            .order_by(Ticket.updated_at.desc(), Ticket.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_vendor(self, vendor_email: str) -> list[Ticket]:
        stmt = (
            select(Ticket)
            .where(Ticket.vendor_email == vendor_email)
            .order_by(Ticket.created_at.desc(), Ticket.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_all(self) -> list[Ticket]:
        stmt = select(Ticket).order_by(Ticket.created_at.desc(), Ticket.id)
        return list(self.db.execute(stmt).scalars().all())
