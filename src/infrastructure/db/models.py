# src/infrastructure/db/models.py

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    Boolean,
    DateTime,
    Enum,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    Index,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from src.infrastructure.db.session import Base
from src.infrastructure import settings
from src.domain.state_machine import BookingStatus, UserRole, VerificationStatus


SLOT_POOL_ID = 1


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.USER,
    )
    is_fraud: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Ticket(Base):
    """
    A vendor's listing. `quantity` is the sellable count and only
    shrinks through the conditional decrement at settlement.
    """

    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    vendor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    origin: Mapped[str] = mapped_column(String(128), nullable=False)
    destination: Mapped[str] = mapped_column(String(128), nullable=False)
    transport_type: Mapped[str] = mapped_column(String(32), nullable=False, default="BUS")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    departure_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    verification_status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus, name="verification_status"),
        nullable=False,
        default=VerificationStatus.PENDING,
    )
    admin_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    advertised: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hidden_for_fraud: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_ticket_quantity_nonnegative"),
        CheckConstraint("unit_price >= 0", name="ck_ticket_price_nonnegative"),
        Index("ix_tickets_vendor_email", "vendor_email"),
    )


class Booking(Base):
    """
    Booking table reflecting domain state.
    Domain controls transitions.
    Price and route fields are a snapshot taken at creation.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    ticket_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tickets.id"),
        nullable=False,
    )
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    vendor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    ticket_title: Mapped[str] = mapped_column(String(128), nullable=False)
    origin: Mapped[str] = mapped_column(String(128), nullable=False)
    destination: Mapped[str] = mapped_column(String(128), nullable=False)
    departure_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    payment_transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "quantity > 0",
            name="ck_booking_quantity_positive",
        ),
        Index("ix_bookings_user_email", "user_email"),
        Index("ix_bookings_vendor_email", "vendor_email"),
    )


class PaymentLedgerEntry(Base):
    """
    Append-only record of a settled payment.
    The unique external transaction id is the idempotency gate.
    """

    __tablename__ = "payment_ledger"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    external_transaction_id: Mapped[str] = mapped_column(String(128), nullable=False)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
    )
    ticket_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tickets.id"),
        nullable=False,
    )
    ticket_title: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    vendor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    settled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "external_transaction_id",
            name="uq_payment_ledger_external_transaction_id",
        ),
        CheckConstraint("amount >= 0", name="ck_ledger_amount_nonnegative"),
    )


class AdvertisementSlotPool(Base):
    """Singleton row counting claimed advertisement slots."""

    __tablename__ = "advertisement_slot_pool"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("used >= 0", name="ck_slots_used_nonnegative"),
        CheckConstraint("used <= capacity", name="ck_slots_used_lte_capacity"),
    )


@event.listens_for(AdvertisementSlotPool.__table__, "after_create")
def _seed_slot_pool(target, connection, **kw):
    # The pool row exists from the moment the table does.
    connection.execute(
        target.insert().values(
            id=SLOT_POOL_ID,
            capacity=settings.ADVERTISEMENT_SLOT_CAPACITY,
            used=0,
        )
    )
