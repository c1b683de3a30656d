import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from src.domain.exceptions import (
    ForbiddenError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotAVendorError,
    NotFoundError,
)
from src.domain.payments import to_money
from src.domain.state_machine import UserRole, VerificationStatus
from src.infrastructure.db.models import Ticket, User
from src.infrastructure.db.session import atomic
from src.infrastructure.repositories.ticket_repository import InventoryStore
from src.infrastructure.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "title",
    "origin",
    "destination",
    "transport_type",
    "unit_price",
    "quantity",
    "departure_at",
}


class TicketService:
    """Vendor listings, admin moderation and account roles."""

    def __init__(self, db: Session, inventory: InventoryStore):
        self.db = db
        self.inventory = inventory
        self.user_repository = UserRepository(db)

    def register_user(self, email: str, name: str = "", role: UserRole = UserRole.USER) -> User:
        if not email or "@" not in email:
            raise InvalidInputError(f"Invalid e-mail: {email!r}")

        with atomic(self.db):
            user = self.user_repository.upsert(email=email, name=name, role=role)
            user_id = user.id

        logger.info("User registered. email=%s role=%s", email, role.value)
        return self.db.get(User, user_id)

    def get_user(self, email: str) -> User:
        user = self.user_repository.get_by_email(email)
        if not user:
            raise NotFoundError("User", email)
        return user

    def create_ticket(
        self,
        vendor_email: str,
        title: str,
        origin: str,
        destination: str,
        unit_price: Decimal,
        quantity: int,
        departure_at: datetime,
        transport_type: str = "BUS",
    ) -> Ticket:
        _validate_listing(unit_price=unit_price, quantity=quantity)

        with atomic(self.db):
            vendor = self.get_user(vendor_email)
            if vendor.role != UserRole.VENDOR:
                raise NotAVendorError(f"{vendor_email} is not a vendor")
            # Conditional write on the vendor row orders this insert
            # against a concurrent mark_fraud.
            if vendor.is_fraud or not self.user_repository.lock_active_vendor(vendor_email):
                raise ForbiddenError(f"Vendor {vendor_email} is blocked for fraud")

            ticket = self.inventory.add(
                Ticket(
                    vendor_email=vendor.email,
                    vendor_name=vendor.name,
                    title=title,
                    origin=origin,
                    destination=destination,
                    transport_type=transport_type,
                    unit_price=to_money(unit_price),
                    quantity=quantity,
                    departure_at=departure_at,
                    verification_status=VerificationStatus.PENDING,
                    admin_approved=False,
                    advertised=False,
                    hidden_for_fraud=False,
                )
            )
            ticket_id = ticket.id

        logger.info("Ticket listed. ticket_id=%s vendor=%s quantity=%s", ticket_id, vendor_email, quantity)
        return self.inventory.get(ticket_id)

    def update_ticket(self, ticket_id: str, vendor_email: str, **changes) -> Ticket:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Fields cannot be edited: {sorted(unknown)}")
        _validate_listing(
            unit_price=changes.get("unit_price"),
            quantity=changes.get("quantity"),
        )

        with atomic(self.db):
            ticket = self.inventory.get(ticket_id)
            if ticket.vendor_email != vendor_email:
                raise ForbiddenError(f"Ticket {ticket_id} belongs to another vendor")
            if ticket.verification_status == VerificationStatus.REJECTED:
                raise ForbiddenError(f"Ticket {ticket_id} was rejected and is read-only")

            for field, value in changes.items():
                if field == "unit_price":
                    value = to_money(value)
                setattr(ticket, field, value)

        logger.info("Ticket updated. ticket_id=%s fields=%s", ticket_id, sorted(changes))
        return self.inventory.get(ticket_id)

    def approve_ticket(self, ticket_id: str) -> Ticket:
        with atomic(self.db):
            ticket = self.inventory.get(ticket_id)
            if ticket.verification_status == VerificationStatus.REJECTED:
                raise InvalidStateTransitionError(
                    from_state=ticket.verification_status.value,
                    to_state=VerificationStatus.APPROVED.value,
                )
            ticket.verification_status = VerificationStatus.APPROVED
            ticket.admin_approved = True

        logger.info("Ticket approved. ticket_id=%s", ticket_id)
        return self.inventory.get(ticket_id)

    def reject_ticket(self, ticket_id: str) -> Ticket:
        with atomic(self.db):
            ticket = self.inventory.get(ticket_id)
            ticket.verification_status = VerificationStatus.REJECTED
            ticket.admin_approved = False
            self.db.flush()

            if self.inventory.unflag_advertised(ticket_id):
                self.inventory.ensure_slot_pool()
                self.inventory.release_slots(1)

        logger.info("Ticket rejected. ticket_id=%s", ticket_id)
        return self.inventory.get(ticket_id)

    def get_public_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.inventory.get(ticket_id)
        visible = (
            ticket.admin_approved
            and ticket.verification_status == VerificationStatus.APPROVED
            and not ticket.hidden_for_fraud
        )
        if not visible:
            raise NotFoundError("Ticket", ticket_id)
        return ticket

    def list_public_tickets(self, limit: int | None = None, newest_first: bool = True) -> list[Ticket]:
        return self.inventory.list_public(limit=limit, newest_first=newest_first)

    def list_advertised_tickets(self) -> list[Ticket]:
        return self.inventory.list_advertised()

    def list_vendor_tickets(self, vendor_email: str) -> list[Ticket]:
        return self.inventory.list_for_vendor(vendor_email)

    def list_all_tickets(self) -> list[Ticket]:
        return self.inventory.list_all()


def _validate_listing(unit_price=None, quantity=None) -> None:
    if quantity is not None and (isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0):
        raise InvalidInputError(f"Quantity must be a non-negative integer, got {quantity}")
    if unit_price is not None and to_money(unit_price) < 0:
        raise InvalidInputError(f"Price must not be negative, got {unit_price}")
