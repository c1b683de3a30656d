from fastapi import APIRouter, Depends, HTTPException, status

from src.api.deps import (
    Caller,
    get_caller,
    get_gateway,
    get_marketplace,
    require_roles,
)
from src.api.schemas.schemas import (
    AdvertiseRequest,
    BookingRequest,
    BookingResponse,
    CheckoutResponse,
    FraudResponse,
    LedgerEntryResponse,
    PaymentResultResponse,
    PublicTicketResponse,
    RazorpayVerifyRequest,
    TicketCreate,
    TicketResponse,
    TicketUpdate,
    UserRegisterRequest,
    UserResponse,
    UserRoleRequest,
)
from src.application.marketplace import Marketplace
from src.domain.exceptions import (
    ExpiredError,
    ForbiddenError,
    InsufficientInventoryError,
    InvalidInputError,
    InvalidStateTransitionError,
    MarketplaceError,
    NotApprovedYetError,
    NotFoundError,
    OwnershipMismatchError,
    SlotsFullError,
    TicketUnavailableError,
)
from src.domain.state_machine import BookingStateMachine, BookingStatus, UserRole
from src.infrastructure.payments.razorpay_gateway import GatewayNotConfiguredError, RazorpayGateway
from src.infrastructure.repositories.ledger_repository import LedgerRepository


router = APIRouter()

PUBLIC_PAGE_SIZE = 6

_STATUS_BY_ERROR: list[tuple[type[MarketplaceError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (ExpiredError, status.HTTP_410_GONE),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT),
    (TicketUnavailableError, status.HTTP_409_CONFLICT),
    (InsufficientInventoryError, status.HTTP_409_CONFLICT),
    (SlotsFullError, status.HTTP_409_CONFLICT),
    (NotApprovedYetError, status.HTTP_409_CONFLICT),
]


def _http_error(exc: MarketplaceError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _gateway_unavailable(exc: GatewayNotConfiguredError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
    )


@router.get("/health")
def health():
    return {"message": "Ticket marketplace is running"}


# -----------------------------
# Users
# -----------------------------
@router.post("/users", response_model=UserResponse)
def register_user(
    request: UserRegisterRequest,
    caller: Caller = Depends(get_caller),
    market: Marketplace = Depends(get_marketplace),
):
    if request.email != caller.email:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token does not match e-mail")
    try:
        existing = market.tickets.get_user(request.email)
        role = existing.role
    except NotFoundError:
        role = UserRole.USER
    try:
        return market.tickets.register_user(request.email, request.name, role)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


@router.get("/users/me", response_model=UserResponse)
def get_me(
    caller: Caller = Depends(get_caller),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        return market.tickets.get_user(caller.email)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


@router.patch("/admin/users/{email}/role", response_model=UserResponse)
def change_user_role(
    email: str,
    request: UserRoleRequest,
    _: Caller = Depends(require_roles(UserRole.ADMIN)),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        user = market.tickets.get_user(email)
        return market.tickets.register_user(email, user.name, request.role)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


@router.post("/admin/vendors/{email}/fraud", response_model=FraudResponse)
def mark_vendor_fraud(
    email: str,
    _: Caller = Depends(require_roles(UserRole.ADMIN)),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        hidden = market.fraud.mark_fraud(email)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc
    return FraudResponse(hidden_count=hidden)


# -----------------------------
# Public tickets
# -----------------------------
@router.get("/tickets", response_model=list[PublicTicketResponse])
def list_tickets(market: Marketplace = Depends(get_marketplace)):
    return market.tickets.list_public_tickets()


@router.get("/tickets/latest", response_model=list[PublicTicketResponse])
def list_latest_tickets(market: Marketplace = Depends(get_marketplace)):
    return market.tickets.list_public_tickets(limit=PUBLIC_PAGE_SIZE, newest_first=True)


@router.get("/tickets/advertised", response_model=list[PublicTicketResponse])
def list_advertised_tickets(market: Marketplace = Depends(get_marketplace)):
    return market.tickets.list_advertised_tickets()


@router.get("/tickets/{ticket_id}", response_model=PublicTicketResponse)
def get_ticket(ticket_id: str, market: Marketplace = Depends(get_marketplace)):
    try:
        return market.tickets.get_public_ticket(ticket_id)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


# -----------------------------
# Vendor
# -----------------------------
@router.post("/vendor/tickets", response_model=TicketResponse)
def create_ticket(
    request: TicketCreate,
    caller: Caller = Depends(require_roles(UserRole.VENDOR)),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        return market.tickets.create_ticket(vendor_email=caller.email, **request.model_dump())
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


@router.get("/vendor/tickets", response_model=list[TicketResponse])
def list_vendor_tickets(
    caller: Caller = Depends(require_roles(UserRole.VENDOR)),
    market: Marketplace = Depends(get_marketplace),
):
    return market.tickets.list_vendor_tickets(caller.email)


@router.patch("/vendor/tickets/{ticket_id}", response_model=TicketResponse)
def update_ticket(
    ticket_id: str,
    request: TicketUpdate,
    caller: Caller = Depends(require_roles(UserRole.VENDOR)),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        return market.tickets.update_ticket(
            ticket_id,
            caller.email,
            **request.model_dump(exclude_unset=True, exclude_none=True),
        )
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


@router.get("/vendor/bookings", response_model=list[BookingResponse])
def list_vendor_bookings(
    caller: Caller = Depends(require_roles(UserRole.VENDOR)),
    market: Marketplace = Depends(get_marketplace),
):
    return market.bookings.list_for_vendor(caller.email)


@router.post("/vendor/bookings/{booking_id}/accept", response_model=BookingResponse)
def accept_booking(
    booking_id: str,
    caller: Caller = Depends(require_roles(UserRole.VENDOR)),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        return market.bookings.accept_booking(booking_id, caller.email)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


@router.post("/vendor/bookings/{booking_id}/reject", response_model=BookingResponse)
def reject_booking(
    booking_id: str,
    caller: Caller = Depends(require_roles(UserRole.VENDOR)),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        return market.bookings.reject_booking(booking_id, caller.email)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


@router.get("/vendor/payments", response_model=list[LedgerEntryResponse])
def list_vendor_payments(
    caller: Caller = Depends(require_roles(UserRole.VENDOR)),
    market: Marketplace = Depends(get_marketplace),
):
    return LedgerRepository(market.db).list_for_vendor(caller.email)


# -----------------------------
# Admin moderation
# -----------------------------
@router.get("/admin/tickets", response_model=list[TicketResponse])
def list_all_tickets(
    _: Caller = Depends(require_roles(UserRole.ADMIN)),
    market: Marketplace = Depends(get_marketplace),
):
    return market.tickets.list_all_tickets()


@router.post("/admin/tickets/{ticket_id}/approve", response_model=TicketResponse)
def approve_ticket(
    ticket_id: str,
    _: Caller = Depends(require_roles(UserRole.ADMIN)),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        return market.tickets.approve_ticket(ticket_id)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


@router.post("/admin/tickets/{ticket_id}/reject", response_model=TicketResponse)
def reject_ticket(
    ticket_id: str,
    _: Caller = Depends(require_roles(UserRole.ADMIN)),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        return market.tickets.reject_ticket(ticket_id)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


@router.patch("/admin/tickets/{ticket_id}/advertise", response_model=TicketResponse)
def set_advertised(
    ticket_id: str,
    request: AdvertiseRequest,
    _: Caller = Depends(require_roles(UserRole.ADMIN)),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        return market.advertisements.set_advertised(ticket_id, request.advertised)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


# -----------------------------
# Bookings & payments
# -----------------------------
@router.post("/bookings", response_model=BookingResponse)
def create_booking(
    request: BookingRequest,
    caller: Caller = Depends(require_roles(UserRole.USER)),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        return market.bookings.create_booking(
            ticket_id=request.ticket_id,
            user_email=caller.email,
            quantity=request.quantity,
        )
    except MarketplaceError as exc:
        raise _http_error(exc) from exc


@router.get("/bookings", response_model=list[BookingResponse])
def list_my_bookings(
    caller: Caller = Depends(get_caller),
    market: Marketplace = Depends(get_marketplace),
):
    return market.bookings.list_for_user(caller.email)


@router.post("/bookings/{booking_id}/checkout", response_model=CheckoutResponse)
def create_checkout(
    booking_id: str,
    caller: Caller = Depends(require_roles(UserRole.USER)),
    market: Marketplace = Depends(get_marketplace),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    try:
        booking = market.bookings.get_booking(booking_id)
        if booking.user_email != caller.email:
            raise OwnershipMismatchError(f"Booking {booking_id} belongs to another user")
        BookingStateMachine.validate_transition(booking.status, BookingStatus.PAID)
        order = gateway.create_order(booking)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc
    except GatewayNotConfiguredError as exc:
        raise _gateway_unavailable(exc) from exc

    return CheckoutResponse(booking_id=booking_id, **order)


@router.post("/bookings/{booking_id}/payments/verify", response_model=PaymentResultResponse)
def verify_payment(
    booking_id: str,
    request: RazorpayVerifyRequest,
    caller: Caller = Depends(require_roles(UserRole.USER)),
    market: Marketplace = Depends(get_marketplace),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    try:
        confirmation = gateway.fetch_confirmation(
            order_id=request.razorpay_order_id,
            payment_id=request.razorpay_payment_id,
            signature=request.razorpay_signature,
            payer_email=caller.email,
        )
        if confirmation.booking_id != booking_id:
            raise InvalidInputError("Payment is correlated with another booking")
        result = market.payments.reconcile(confirmation)
    except MarketplaceError as exc:
        raise _http_error(exc) from exc
    except GatewayNotConfiguredError as exc:
        raise _gateway_unavailable(exc) from exc

    return PaymentResultResponse(
        already_processed=result.already_processed,
        entry=LedgerEntryResponse.model_validate(result.entry),
    )


@router.get("/payments", response_model=list[LedgerEntryResponse])
def list_my_payments(
    caller: Caller = Depends(get_caller),
    market: Marketplace = Depends(get_marketplace),
):
    return LedgerRepository(market.db).list_for_user(caller.email)
