import logging

from sqlalchemy.orm import Session

from src.domain.exceptions import NotAVendorError, NotFoundError
from src.domain.state_machine import UserRole
from src.infrastructure.db.session import atomic
from src.infrastructure.repositories.ticket_repository import InventoryStore
from src.infrastructure.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class FraudPropagator:
    """
    Flags a vendor as fraudulent and hides all of its tickets in the
    same transaction, so readers see either none or all of it.
    Bookings are left alone.
    """

    def __init__(self, db: Session, inventory: InventoryStore):
        self.db = db
        self.inventory = inventory
        self.user_repository = UserRepository(db)

    def mark_fraud(self, vendor_email: str) -> int:
        with atomic(self.db):
            vendor = self.user_repository.get_by_email(vendor_email)
            if not vendor:
                raise NotFoundError("Vendor", vendor_email)
            if vendor.role != UserRole.VENDOR:
                raise NotAVendorError(f"{vendor_email} is not a vendor")

            if not self.user_repository.flag_fraud(vendor_email):
                # Role changed between the read and the write.
                raise NotAVendorError(f"{vendor_email} is not a vendor")

            hidden, unadvertised = self.inventory.set_hidden_for_fraud(vendor_email)
            if unadvertised:
                self.inventory.ensure_slot_pool()
                self.inventory.release_slots(unadvertised)

        logger.info(
            "Vendor marked fraud. vendor=%s hidden_tickets=%s released_slots=%s",
            vendor_email,
            hidden,
            unadvertised,
        )
        return hidden
