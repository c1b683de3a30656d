from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.domain.state_machine import BookingStatus, UserRole, VerificationStatus


class UserRegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    name: str = ""


class UserRoleRequest(BaseModel):
    role: UserRole


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: UserRole
    is_fraud: bool


class TicketCreate(BaseModel):
    title: str = Field(min_length=1, max_length=128)
    origin: str = Field(min_length=1, max_length=128)
    destination: str = Field(min_length=1, max_length=128)
    transport_type: str = "BUS"
    unit_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    quantity: int = Field(ge=0)
    departure_at: datetime


class TicketUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=128)
    origin: str | None = Field(default=None, min_length=1, max_length=128)
    destination: str | None = Field(default=None, min_length=1, max_length=128)
    transport_type: str | None = None
    unit_price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    quantity: int | None = Field(default=None, ge=0)
    departure_at: datetime | None = None


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    vendor_email: str
    vendor_name: str
    title: str
    origin: str
    destination: str
    transport_type: str
    unit_price: Decimal
    quantity: int
    departure_at: datetime
    verification_status: VerificationStatus
    admin_approved: bool
    advertised: bool
    hidden_for_fraud: bool


class PublicTicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    origin: str
    destination: str
    transport_type: str
    unit_price: Decimal
    quantity: int
    departure_at: datetime


class AdvertiseRequest(BaseModel):
    advertised: bool


class BookingRequest(BaseModel):
    ticket_id: str
    quantity: int = Field(gt=0)


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    user_email: str
    vendor_email: str
    ticket_title: str
    origin: str
    destination: str
    departure_at: datetime
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    status: BookingStatus
    payment_transaction_id: str | None = None


class CheckoutResponse(BaseModel):
    booking_id: str
    order_id: str
    amount: int
    currency: str
    key_id: str


class RazorpayVerifyRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    external_transaction_id: str
    booking_id: str
    ticket_id: str
    ticket_title: str
    amount: Decimal
    currency: str
    quantity: int
    user_email: str
    vendor_email: str
    settled_at: datetime


class PaymentResultResponse(BaseModel):
    already_processed: bool
    entry: LedgerEntryResponse


class FraudResponse(BaseModel):
    hidden_count: int
