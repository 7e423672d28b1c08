from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    """Request bodies: camelCase on the wire, unknown fields rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class ResponseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# -----------------------------
# Bookings
# -----------------------------
class TicketLineRequest(RequestModel):
    ticket_type: str = Field(min_length=1, max_length=64)
    quantity: int = Field(gt=0)
    unit_price: int = Field(ge=0)


class CreateOrderRequest(RequestModel):
    total_amount: int = Field(gt=0)


class CreateOrderResponse(ResponseModel):
    order_id: str
    amount: int
    currency: str


class BookingIntentRequest(RequestModel):
    event_id: str
    tickets: list[TicketLineRequest] = Field(min_length=1)
    coupon_id: str | None = None
    total_amount: int = Field(ge=0)
    discounted_amount: int = Field(ge=0)


class VerifyPaymentRequest(BookingIntentRequest):
    payment_id: str = Field(min_length=1, max_length=128)
    order_id: str = Field(min_length=1, max_length=64)
    signature: str = Field(min_length=1, max_length=255)


class WalletBookingRequest(BookingIntentRequest):
    payment_method: Literal["wallet"] = "wallet"
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=128)


class CancelBookingRequest(RequestModel):
    reason: str | None = Field(default=None, max_length=500)


class TicketLineResponse(ResponseModel):
    ticket_type: str
    quantity: int
    unit_price: int


class CancellationResponse(ResponseModel):
    cancelled_by: str
    cancelled_at: datetime
    reason: str | None = None


class BookingResponse(ResponseModel):
    id: str
    user_id: str
    event_id: str
    tickets: list[TicketLineResponse]
    coupon_id: str | None = None
    total_amount: int
    discounted_amount: int
    status: str
    payment_method: str
    payment_status: str
    payment_id: str
    ticket_number: str
    cancellation: CancellationResponse | None = None
    created_at: datetime


class BookingEnvelope(ResponseModel):
    booking: BookingResponse


class BookingPageResponse(ResponseModel):
    items: list[BookingResponse]
    total: int
    page: int
    pages: int


# -----------------------------
# Events
# -----------------------------
class TicketTypeCreate(RequestModel):
    ticket_type: str = Field(min_length=1, max_length=64)
    unit_price: int = Field(ge=0)
    capacity: int = Field(ge=0)


class EventCreate(RequestModel):
    title: str = Field(min_length=1, max_length=128)
    venue: str = Field(min_length=1, max_length=128)
    starts_at: datetime
    ticket_types: list[TicketTypeCreate] = Field(min_length=1)


class TicketTypeResponse(ResponseModel):
    ticket_type: str
    unit_price: int
    capacity: int
    remaining_count: int


class EventResponse(ResponseModel):
    id: str
    host_id: str
    title: str
    venue: str
    starts_at: datetime
    is_cancelled: bool
    cancellation_reason: str | None = None
    ticket_types: list[TicketTypeResponse]


class CancelEventRequest(RequestModel):
    reason: str = Field(min_length=1, max_length=500)


class CancelEventResponse(ResponseModel):
    event_id: str
    cancelled_count: int
    cancelled_booking_ids: list[str]
    notified_users: list[str]


# -----------------------------
# Wallet
# -----------------------------
class WalletOrderRequest(RequestModel):
    amount: int = Field(gt=0)


class WalletVerifyRequest(RequestModel):
    payment_id: str = Field(min_length=1, max_length=128)
    order_id: str = Field(min_length=1, max_length=64)
    signature: str = Field(min_length=1, max_length=255)


class WalletTransactionResponse(ResponseModel):
    type: str
    amount: int
    description: str
    payment_id: str | None = None
    date: datetime


class WalletResponse(ResponseModel):
    balance: int
    transactions: list[WalletTransactionResponse]
    total: int
    page: int
    pages: int


# -----------------------------
# Outbox
# -----------------------------
class OutboxEventResponse(ResponseModel):
    id: str
    aggregate_type: str
    aggregate_id: str
    event_type: str
    status: str
    attempts: int
    created_at: str


class ErrorResponse(ResponseModel):
    code: str
    message: str
