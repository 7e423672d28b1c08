"""Notification dispatch through the transactional outbox.

Notifications are written in the same transaction as the booking change they
describe; a separate relay drains PENDING rows and marks them published.
"""

from typing import Iterable, Protocol

from booking_core.infrastructure.db.models import Booking, Event
from booking_core.infrastructure.repositories.outbox_repository import OutboxRepository


class NotificationDispatcher(Protocol):
    def booking_confirmed(self, booking: Booking) -> None: ...

    def booking_cancelled(self, booking: Booking) -> None: ...

    def event_cancelled(self, event: Event, user_ids: Iterable[str], reason: str) -> None: ...


class OutboxNotificationDispatcher:

    def __init__(self, outbox: OutboxRepository):
        self.outbox = outbox

    def booking_confirmed(self, booking: Booking) -> None:
        self.outbox.add(
            aggregate_type="booking",
            aggregate_id=booking.id,
            event_type="BOOKING_CONFIRMED",
            payload={
                "booking_id": booking.id,
                "user_id": booking.user_id,
                "event_id": booking.event_id,
                "ticket_number": booking.ticket_number,
                "payment_method": booking.payment_method.value,
                "payment_id": booking.payment_id,
                "amount": booking.discounted_amount,
            },
            dedupe_key=f"booking:{booking.id}:confirmed",
        )

    def booking_cancelled(self, booking: Booking) -> None:
        self.outbox.add(
            aggregate_type="booking",
            aggregate_id=booking.id,
            event_type="BOOKING_CANCELLED",
            payload={
                "booking_id": booking.id,
                "user_id": booking.user_id,
                "event_id": booking.event_id,
                "cancelled_by": booking.cancelled_by.value if booking.cancelled_by else None,
                "reason": booking.cancellation_reason,
                "refund_amount": booking.total_amount,
            },
            dedupe_key=f"booking:{booking.id}:cancelled",
        )

    def event_cancelled(self, event: Event, user_ids: Iterable[str], reason: str) -> None:
        for user_id in sorted(user_ids):
            self.outbox.add(
                aggregate_type="event",
                aggregate_id=event.id,
                event_type="EVENT_CANCELLED",
                payload={
                    "event_id": event.id,
                    "user_id": user_id,
                    "message": f"Event '{event.title}' was cancelled: {reason}",
                },
                dedupe_key=f"event:{event.id}:cancelled:{user_id}",
            )
