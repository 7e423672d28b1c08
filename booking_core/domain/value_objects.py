"""Domain primitives passed between the API layer and the booking core."""

from dataclasses import dataclass, field
from math import ceil
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class TicketLine:
    """One ticket type requested (or booked) with its quantity and unit price."""

    ticket_type: str
    quantity: int
    unit_price: int = 0

    @property
    def line_total(self) -> int:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class BookingIntent:
    """What the client wants to buy, independent of how it is paid for."""

    event_id: str
    tickets: tuple[TicketLine, ...]
    total_amount: int
    discounted_amount: int
    coupon_ref: str | None = None


@dataclass(frozen=True)
class PaymentConfirmation:
    """Gateway callback data presented by the client after paying."""

    order_id: str
    payment_id: str
    signature: str


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount_minor_units: int
    currency: str
    receipt: str


@dataclass(frozen=True)
class CouponValidation:
    valid: bool
    discount_amount: int = 0
    coupon_id: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return ceil(self.total / self.limit) if self.limit else 0


@dataclass(frozen=True)
class EventCancellationResult:
    event_id: str
    cancelled_booking_ids: list[str] = field(default_factory=list)
    notified_user_ids: list[str] = field(default_factory=list)
