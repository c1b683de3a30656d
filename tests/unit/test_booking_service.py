from datetime import timedelta
from decimal import Decimal

import pytest

from src.domain.exceptions import (
    ForbiddenError,
    InsufficientInventoryError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    NotFoundError,
    TicketUnavailableError,
)
from src.domain.state_machine import BookingStatus, UserRole


def test_create_booking_snapshots_price_and_route(market, make_ticket, rider, vendor):
    ticket = make_ticket(quantity=5, unit_price="14.00")

    booking = market.bookings.create_booking(ticket.id, rider.email, 3)

    assert booking.status == BookingStatus.PENDING
    assert booking.vendor_email == vendor.email
    assert booking.ticket_title == ticket.title
    assert booking.origin == "Dhaka"
    assert booking.destination == "Sylhet"
    assert booking.unit_price == Decimal("14.00")
    assert booking.total_price == Decimal("42.00")
    assert booking.payment_transaction_id is None


def test_create_booking_does_not_hold_inventory(market, make_ticket, rider):
    ticket = make_ticket(quantity=5)

    market.bookings.create_booking(ticket.id, rider.email, 3)
    market.bookings.create_booking(ticket.id, rider.email, 3)

    assert market.inventory.get(ticket.id).quantity == 5


def test_later_price_change_leaves_booking_total_alone(market, make_ticket, rider, vendor):
    ticket = make_ticket(quantity=5, unit_price="10.00")
    booking = market.bookings.create_booking(ticket.id, rider.email, 2)

    market.tickets.update_ticket(ticket.id, vendor.email, unit_price=Decimal("99.00"))

    reloaded = market.bookings.get_booking(booking.id)
    assert reloaded.unit_price == Decimal("10.00")
    assert reloaded.total_price == Decimal("20.00")


@pytest.mark.parametrize("quantity", [0, -1])
def test_non_positive_quantity_is_rejected(market, make_ticket, rider, quantity):
    ticket = make_ticket()

    with pytest.raises(InvalidQuantityError):
        market.bookings.create_booking(ticket.id, rider.email, quantity)


def test_unapproved_ticket_is_unavailable(market, make_ticket, rider):
    ticket = make_ticket(approved=False)

    with pytest.raises(TicketUnavailableError):
        market.bookings.create_booking(ticket.id, rider.email, 1)


def test_departed_ticket_is_unavailable(market, make_ticket, rider, clock):
    ticket = make_ticket(departs_in=timedelta(hours=1))
    clock.advance(hours=2)

    with pytest.raises(TicketUnavailableError):
        market.bookings.create_booking(ticket.id, rider.email, 1)


def test_quantity_above_stock_is_rejected(market, make_ticket, rider):
    ticket = make_ticket(quantity=2)

    with pytest.raises(InsufficientInventoryError):
        market.bookings.create_booking(ticket.id, rider.email, 3)


def test_unknown_ticket(market, rider):
    with pytest.raises(NotFoundError):
        market.bookings.create_booking("missing", rider.email, 1)


def test_fraud_hidden_ticket_cannot_be_booked(market, make_ticket, rider, vendor):
    ticket = make_ticket()
    market.fraud.mark_fraud(vendor.email)

    with pytest.raises(TicketUnavailableError):
        market.bookings.create_booking(ticket.id, rider.email, 1)


def test_vendor_accepts_pending_booking(market, make_ticket, rider, vendor):
    ticket = make_ticket()
    booking = market.bookings.create_booking(ticket.id, rider.email, 2)

    accepted = market.bookings.accept_booking(booking.id, vendor.email)

    assert accepted.status == BookingStatus.ACCEPTED


def test_vendor_rejects_pending_booking(market, make_ticket, rider, vendor):
    ticket = make_ticket()
    booking = market.bookings.create_booking(ticket.id, rider.email, 2)

    rejected = market.bookings.reject_booking(booking.id, vendor.email)

    assert rejected.status == BookingStatus.REJECTED


def test_other_vendor_is_forbidden(market, make_ticket, rider):
    ticket = make_ticket()
    booking = market.bookings.create_booking(ticket.id, rider.email, 1)
    market.tickets.register_user("other@example.com", "Other", UserRole.VENDOR)

    with pytest.raises(ForbiddenError):
        market.bookings.accept_booking(booking.id, "other@example.com")
    with pytest.raises(ForbiddenError):
        market.bookings.reject_booking(booking.id, "other@example.com")

    assert market.bookings.get_booking(booking.id).status == BookingStatus.PENDING


@pytest.mark.parametrize("first", ["accept", "reject"])
def test_decisions_only_apply_to_pending(market, make_ticket, rider, vendor, first):
    ticket = make_ticket()
    booking = market.bookings.create_booking(ticket.id, rider.email, 1)
    getattr(market.bookings, f"{first}_booking")(booking.id, vendor.email)

    with pytest.raises(InvalidStateTransitionError):
        market.bookings.accept_booking(booking.id, vendor.email)
    with pytest.raises(InvalidStateTransitionError):
        market.bookings.reject_booking(booking.id, vendor.email)


def test_accept_rechecks_current_stock(market, make_ticket, rider, vendor):
    ticket = make_ticket(quantity=5)
    booking = market.bookings.create_booking(ticket.id, rider.email, 4)
    market.tickets.update_ticket(ticket.id, vendor.email, quantity=2)

    with pytest.raises(InsufficientInventoryError):
        market.bookings.accept_booking(booking.id, vendor.email)

    assert market.bookings.get_booking(booking.id).status == BookingStatus.PENDING


def test_pending_booking_cannot_be_accepted_after_fraud_hides_the_ticket(market, make_ticket, rider, vendor):
    ticket = make_ticket()
    booking = market.bookings.create_booking(ticket.id, rider.email, 1)
    market.fraud.mark_fraud(vendor.email)

    with pytest.raises(TicketUnavailableError):
        market.bookings.accept_booking(booking.id, vendor.email)

    assert market.bookings.get_booking(booking.id).status == BookingStatus.PENDING


def test_pending_booking_cannot_be_accepted_after_departure(market, make_ticket, rider, vendor, clock):
    ticket = make_ticket(departs_in=timedelta(hours=1))
    booking = market.bookings.create_booking(ticket.id, rider.email, 1)
    clock.advance(hours=2)

    with pytest.raises(TicketUnavailableError):
        market.bookings.accept_booking(booking.id, vendor.email)

    assert market.bookings.get_booking(booking.id).status == BookingStatus.PENDING


def test_listing_projections(market, make_ticket, rider, vendor):
    ticket = make_ticket()
    booking = market.bookings.create_booking(ticket.id, rider.email, 1)

    assert [b.id for b in market.bookings.list_for_user(rider.email)] == [booking.id]
    assert [b.id for b in market.bookings.list_for_vendor(vendor.email)] == [booking.id]
    assert market.bookings.list_for_user("nobody@example.com") == []
