

class MarketplaceError(Exception):
    """
    Base exception for all domain-level errors
    inside the ticket marketplace.
    """


class NotFoundError(MarketplaceError):
    """Raised when a ticket, booking or user does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidInputError(MarketplaceError):
    """Raised when a request carries malformed or out-of-range values."""


class InvalidQuantityError(InvalidInputError):

    def __init__(self, quantity: int):
        self.quantity = quantity
        super().__init__(f"Quantity must be a positive integer, got {quantity}")


class PaymentAmountMismatchError(InvalidInputError):

    def __init__(self, expected, settled):
        self.expected = expected
        self.settled = settled
        super().__init__(
            f"Settled amount {settled} does not match booking total {expected}"
        )


class ForbiddenError(MarketplaceError):
    """Raised when the caller does not own the resource it acts on."""


class OwnershipMismatchError(ForbiddenError):
    """Raised when a payment's payer is not the booking's user."""


class NotAVendorError(ForbiddenError):
    """Raised when a vendor-only action targets a non-vendor account."""


class InvalidStateTransitionError(MarketplaceError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class TicketUnavailableError(MarketplaceError):
    """Raised when a ticket is not approved, hidden, or already departed."""


class InsufficientInventoryError(MarketplaceError):
    """Raised when fewer tickets remain than were requested."""

    def __init__(self, ticket_id: str, requested: int, available: int | None = None):
        self.ticket_id = ticket_id
        self.requested = requested
        self.available = available
        message = f"Not enough tickets for {ticket_id}. Requested: {requested}"
        if available is not None:
            message += f", Available: {available}"
        super().__init__(message)


class OversoldConflictError(InsufficientInventoryError):
    """
    Raised at settlement when the ticket sold out between acceptance
    and payment. The gateway side must refund the payment.
    """


class SlotsFullError(MarketplaceError):
    """Raised when every advertisement slot is taken."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        super().__init__(f"All {capacity} advertisement slots are in use")


class NotApprovedYetError(MarketplaceError):
    """Raised when advertising a ticket that has not passed moderation."""


class ExpiredError(MarketplaceError):
    """Raised when the ticket's departure time has already passed."""
