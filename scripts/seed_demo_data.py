from datetime import datetime, timedelta, timezone
from decimal import Decimal

from src.application.marketplace import Marketplace
from src.domain.state_machine import UserRole
from src.infrastructure.db.models import Base
from src.infrastructure.db.session import SessionLocal, engine


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    now = datetime.now(timezone.utc)
    target = now + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def seed_users(market: Marketplace) -> None:
    market.tickets.register_user("admin@example.com", "Admin", UserRole.ADMIN)
    market.tickets.register_user("vendor@example.com", "Green Line Travels", UserRole.VENDOR)
    market.tickets.register_user("rider@example.com", "Rider", UserRole.USER)


def seed_tickets(market: Marketplace) -> None:
    ticket_defs = [
        {
            "title": "Dhaka to Chattogram Night Coach",
            "origin": "Dhaka",
            "destination": "Chattogram",
            "transport_type": "BUS",
            "unit_price": Decimal("21.00"),
            "quantity": 40,
            "departure_at": _dt(days_from_now=5, hour=22, minute=30),
        },
        {
            "title": "Sylhet Intercity Express",
            "origin": "Dhaka",
            "destination": "Sylhet",
            "transport_type": "TRAIN",
            "unit_price": Decimal("14.50"),
            "quantity": 120,
            "departure_at": _dt(days_from_now=8, hour=6, minute=40),
        },
        {
            "title": "Barishal Launch Cabin",
            "origin": "Dhaka",
            "destination": "Barishal",
            "transport_type": "LAUNCH",
            "unit_price": Decimal("42.00"),
            "quantity": 12,
            "departure_at": _dt(days_from_now=3, hour=20, minute=0),
        },
    ]

    existing = {ticket.title for ticket in market.tickets.list_vendor_tickets("vendor@example.com")}
    for item in ticket_defs:
        if item["title"] in existing:
            continue
        ticket = market.tickets.create_ticket(vendor_email="vendor@example.com", **item)
        market.tickets.approve_ticket(ticket.id)


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        market = Marketplace(db)
        market.inventory.ensure_slot_pool()
        db.commit()
        seed_users(market)
        seed_tickets(market)
        print("Seed complete: admin, vendor, rider and three approved tickets.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
