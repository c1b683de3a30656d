from datetime import datetime, timedelta, timezone

from src.domain.state_machine import UserRole


def _departure(days: int = 3) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def _setup_accounts(market):
    market.tickets.register_user("admin@example.com", "Admin", UserRole.ADMIN)
    market.tickets.register_user("vendor@example.com", "Green Line", UserRole.VENDOR)
    market.tickets.register_user("rider@example.com", "Rider", UserRole.USER)


def _list_ticket(client, auth, title="Dhaka to Sylhet", quantity=5, price="14.00"):
    response = client.post(
        "/vendor/tickets",
        json={
            "title": title,
            "origin": "Dhaka",
            "destination": "Sylhet",
            "unit_price": price,
            "quantity": quantity,
            "departure_at": _departure(),
        },
        headers=auth("vendor@example.com"),
    )
    assert response.status_code == 200, response.text
    ticket_id = response.json()["id"]

    approve = client.post(f"/admin/tickets/{ticket_id}/approve", headers=auth("admin@example.com"))
    assert approve.status_code == 200, approve.text
    return ticket_id


def _book_and_accept(client, auth, ticket_id, quantity):
    response = client.post(
        "/bookings",
        json={"ticket_id": ticket_id, "quantity": quantity},
        headers=auth("rider@example.com"),
    )
    assert response.status_code == 200, response.text
    booking_id = response.json()["id"]

    accept = client.post(f"/vendor/bookings/{booking_id}/accept", headers=auth("vendor@example.com"))
    assert accept.status_code == 200, accept.text
    assert accept.json()["status"] == "ACCEPTED"
    return booking_id


def _pay(client, auth, gateway, booking_id, payment_id):
    checkout = client.post(f"/bookings/{booking_id}/checkout", headers=auth("rider@example.com"))
    assert checkout.status_code == 200, checkout.text
    order_id = checkout.json()["order_id"]
    gateway.capture(order_id, payment_id)

    return client.post(
        f"/bookings/{booking_id}/payments/verify",
        json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": "valid",
        },
        headers=auth("rider@example.com"),
    )


def test_booking_flow(client, auth, gateway, market):
    _setup_accounts(market)
    ticket_id = _list_ticket(client, auth)

    booking_id = _book_and_accept(client, auth, ticket_id, quantity=3)

    pay_response = _pay(client, auth, gateway, booking_id, "tx_1")
    assert pay_response.status_code == 200, pay_response.text
    body = pay_response.json()
    assert body["already_processed"] is False
    assert body["entry"]["amount"] == "42.00"
    assert body["entry"]["ticket_title"] == "Dhaka to Sylhet"

    replay = client.post(
        f"/bookings/{booking_id}/payments/verify",
        json={
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "tx_1",
            "razorpay_signature": "valid",
        },
        headers=auth("rider@example.com"),
    )
    assert replay.status_code == 200, replay.text
    assert replay.json()["already_processed"] is True
    assert replay.json()["entry"]["amount"] == "42.00"
    assert replay.json()["entry"]["id"] == body["entry"]["id"]

    ticket = client.get(f"/tickets/{ticket_id}")
    assert ticket.json()["quantity"] == 2

    payments = client.get("/payments", headers=auth("rider@example.com"))
    assert len(payments.json()) == 1


def test_oversold_settlement_returns_conflict(client, auth, gateway, market):
    _setup_accounts(market)
    ticket_id = _list_ticket(client, auth, quantity=5)

    first = _book_and_accept(client, auth, ticket_id, quantity=3)
    second = _book_and_accept(client, auth, ticket_id, quantity=3)

    assert _pay(client, auth, gateway, first, "tx_a").status_code == 200
    conflict = _pay(client, auth, gateway, second, "tx_b")

    assert conflict.status_code == 409
    assert client.get(f"/tickets/{ticket_id}").json()["quantity"] == 2


def test_checkout_requires_acceptance(client, auth, market):
    _setup_accounts(market)
    ticket_id = _list_ticket(client, auth)
    response = client.post(
        "/bookings",
        json={"ticket_id": ticket_id, "quantity": 1},
        headers=auth("rider@example.com"),
    )
    booking_id = response.json()["id"]

    checkout = client.post(f"/bookings/{booking_id}/checkout", headers=auth("rider@example.com"))

    assert checkout.status_code == 409


def test_invalid_quantity_is_rejected_at_the_boundary(client, auth, market):
    _setup_accounts(market)
    ticket_id = _list_ticket(client, auth)

    response = client.post(
        "/bookings",
        json={"ticket_id": ticket_id, "quantity": 0},
        headers=auth("rider@example.com"),
    )

    assert response.status_code == 422


def test_decided_booking_cannot_be_decided_again(client, auth, market):
    _setup_accounts(market)
    ticket_id = _list_ticket(client, auth)
    booking_id = _book_and_accept(client, auth, ticket_id, quantity=1)

    again = client.post(f"/vendor/bookings/{booking_id}/reject", headers=auth("vendor@example.com"))

    assert again.status_code == 409


def test_advertisement_cap(client, auth, market):
    _setup_accounts(market)
    ticket_ids = [_list_ticket(client, auth, title=f"Route {n}") for n in range(7)]
    admin = auth("admin@example.com")

    for ticket_id in ticket_ids[:6]:
        response = client.patch(f"/admin/tickets/{ticket_id}/advertise", json={"advertised": True}, headers=admin)
        assert response.status_code == 200, response.text

    full = client.patch(f"/admin/tickets/{ticket_ids[6]}/advertise", json={"advertised": True}, headers=admin)

    assert full.status_code == 409
    assert len(client.get("/tickets/advertised").json()) == 6


def test_fraud_vendor_disappears_from_public_listing(client, auth, market):
    _setup_accounts(market)
    ticket_ids = [_list_ticket(client, auth, title=f"Route {n}") for n in range(3)]

    response = client.post("/admin/vendors/vendor@example.com/fraud", headers=auth("admin@example.com"))

    assert response.status_code == 200, response.text
    assert response.json() == {"hidden_count": 3}
    assert client.get("/tickets").json() == []
    assert client.get("/tickets/latest").json() == []
    for ticket_id in ticket_ids:
        assert client.get(f"/tickets/{ticket_id}").status_code == 404


def test_roles_are_enforced(client, auth, market):
    _setup_accounts(market)

    assert client.post("/admin/vendors/vendor@example.com/fraud", headers=auth("rider@example.com")).status_code == 403
    assert client.get("/vendor/tickets", headers=auth("rider@example.com")).status_code == 403
    assert client.get("/bookings").status_code == 401
