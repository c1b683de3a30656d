import logging

from sqlalchemy.orm import Session

from src.domain.exceptions import NotApprovedYetError, SlotsFullError
from src.domain.state_machine import VerificationStatus
from src.infrastructure.db.models import Ticket
from src.infrastructure.db.session import atomic
from src.infrastructure.repositories.ticket_repository import InventoryStore

logger = logging.getLogger(__name__)


class AdvertisementAllocator:
    """
    Fixed pool of promotional slots over approved tickets.

    Enabling flips the ticket flag and claims a pool slot in one
    transaction; the pool row's conditional increment serializes
    concurrent enables, so the cap holds under contention.
    """

    def __init__(self, db: Session, inventory: InventoryStore):
        self.db = db
        self.inventory = inventory

    def set_advertised(self, ticket_id: str, advertised: bool) -> Ticket:
        if advertised:
            self._enable(ticket_id)
        else:
            self._disable(ticket_id)
        return self.inventory.get(ticket_id)

    def slots_in_use(self) -> int:
        return self.inventory.count_advertised(approved_only=True)

    def _enable(self, ticket_id: str) -> None:
        with atomic(self.db):
            ticket = self.inventory.get(ticket_id)
            approved = (
                ticket.admin_approved
                and ticket.verification_status == VerificationStatus.APPROVED
                and not ticket.hidden_for_fraud
            )
            if not approved:
                raise NotApprovedYetError(f"Ticket {ticket_id} is not approved for advertising")
            if ticket.advertised:
                return

            pool = self.inventory.ensure_slot_pool()

            if not self.inventory.flag_advertised(ticket_id):
                self.db.refresh(ticket)
                if ticket.advertised:
                    return
                raise NotApprovedYetError(f"Ticket {ticket_id} is not approved for advertising")

            if not self.inventory.claim_slot():
                logger.warning(
                    "Advertisement refused, slots full. ticket_id=%s capacity=%s",
                    ticket_id,
                    pool.capacity,
                )
                raise SlotsFullError(pool.capacity)

        logger.info("Ticket advertised. ticket_id=%s", ticket_id)

    def _disable(self, ticket_id: str) -> None:
        with atomic(self.db):
            self.inventory.get(ticket_id)
            if self.inventory.unflag_advertised(ticket_id):
                self.inventory.ensure_slot_pool()
                self.inventory.release_slots(1)
                logger.info("Ticket advertisement removed. ticket_id=%s", ticket_id)
