import os
import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal

_DB_DIR = tempfile.mkdtemp(prefix="ticket-marketplace-tests-")
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest

from src.application.marketplace import Marketplace
from src.domain.state_machine import UserRole
from src.infrastructure.db.models import Base
from src.infrastructure.db.session import SessionLocal, engine


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock(datetime.now(timezone.utc))


@pytest.fixture
def market(db_session, clock):
    return Marketplace(db_session, clock=clock)


@pytest.fixture
def vendor(market):
    return market.tickets.register_user("vendor@example.com", "Green Line", UserRole.VENDOR)


@pytest.fixture
def rider(market):
    return market.tickets.register_user("rider@example.com", "Rider", UserRole.USER)


@pytest.fixture
def make_ticket(market, vendor, clock):
    def _make(
        quantity: int = 5,
        unit_price: str = "14.00",
        approved: bool = True,
        vendor_email: str | None = None,
        departs_in: timedelta = timedelta(days=3),
        title: str = "Dhaka to Sylhet",
    ):
        ticket = market.tickets.create_ticket(
            vendor_email=vendor_email or vendor.email,
            title=title,
            origin="Dhaka",
            destination="Sylhet",
            unit_price=Decimal(unit_price),
            quantity=quantity,
            departure_at=clock() + departs_in,
        )
        if approved:
            ticket = market.tickets.approve_ticket(ticket.id)
        return ticket

    return _make


@pytest.fixture
def accepted_booking(market, make_ticket, rider, vendor):
    def _make(quantity: int = 3, ticket=None, **ticket_kwargs):
        ticket = ticket or make_ticket(**ticket_kwargs)
        booking = market.bookings.create_booking(ticket.id, rider.email, quantity)
        return market.bookings.accept_booking(booking.id, vendor.email)

    return _make
