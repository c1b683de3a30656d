from sqlalchemy.orm import Session

from src.application.advertisement_allocator import AdvertisementAllocator
from src.application.booking_service import BookingService
from src.application.fraud_propagator import FraudPropagator
from src.application.payment_reconciler import PaymentReconciler
from src.application.ticket_service import TicketService
from src.domain.clock import Clock, utc_now
from src.infrastructure.repositories.ticket_repository import InventoryStore


class Marketplace:
    """
    Wires every component to one session. Build one per request
    (or per unit of work); components never reach for a global handle.
    """

    def __init__(self, db: Session, clock: Clock = utc_now):
        self.db = db
        self.inventory = InventoryStore(db)
        self.tickets = TicketService(db, self.inventory)
        self.bookings = BookingService(db, self.inventory, clock)
        self.payments = PaymentReconciler(db, self.inventory, clock)
        self.advertisements = AdvertisementAllocator(db, self.inventory)
        self.fraud = FraudPropagator(db, self.inventory)
