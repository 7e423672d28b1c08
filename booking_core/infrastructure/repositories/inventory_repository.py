# booking_core/infrastructure/repositories/inventory_repository.py

from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from booking_core.domain.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
)
from booking_core.domain.value_objects import TicketLine
from booking_core.infrastructure.db.models import Event, EventTicketType


class InventoryRepository:
    """
    Per-ticket-type stock of an event.

    Every mutation is a single conditional UPDATE so that two requests racing
    for the last tickets cannot both succeed.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_event(self, event_id: str, lock: bool = False) -> Event | None:
        stmt = select(Event).where(Event.id == event_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def require_event(self, event_id: str, lock: bool = False) -> Event:
        event = self.get_event(event_id, lock=lock)
        if not event:
            raise NotFoundError("Event not found")
        return event

    def lock_for_booking(self, event_id: str) -> Event:
        """
        Shared row lock on an event that is still open for booking.
        Held until commit, so a booking and cancel_event on the same event
        cannot interleave. The row is re-read, not taken from the session.
        """
        stmt = (
            select(Event)
            .where(Event.id == event_id)
            .with_for_update(read=True)
            .execution_options(populate_existing=True)
        )
        event = self.db.execute(stmt).scalar_one_or_none()
        if not event:
            raise NotFoundError("Event not found")
        if event.is_cancelled:
            raise InvalidStateError("Event has been cancelled")
        return event

    def get_ticket_types(self, event_id: str) -> list[EventTicketType]:
        stmt = (
            select(EventTicketType)
            .where(EventTicketType.event_id == event_id)
            .order_by(EventTicketType.position)
            .execution_options(populate_existing=True)
        )
        return list(self.db.execute(stmt).scalars().all())

    def create_event(
        self,
        host_id: str,
        title: str,
        venue: str,
        starts_at: datetime,
        ticket_types: Iterable[tuple[str, int, int]],
    ) -> Event:
        event = Event(
            host_id=host_id,
            title=title,
            venue=venue,
            starts_at=starts_at,
            is_cancelled=False,
        )
        self.db.add(event)
        self.db.flush()

        for position, (name, unit_price, capacity) in enumerate(ticket_types):
            self.db.add(
                EventTicketType(
                    event_id=event.id,
                    position=position,
                    ticket_type=name,
                    unit_price=unit_price,
                    capacity=capacity,
                    remaining_count=capacity,
                )
            )
        self.db.flush()
        return event

    def mark_cancelled(self, event: Event, reason: str) -> None:
        event.is_cancelled = True
        event.cancellation_reason = reason
        self.db.flush()

    def check_availability(
        self,
        event_id: str,
        lines: Sequence[TicketLine],
    ) -> None:
        """
        All-or-nothing availability check against the current snapshot.
        Raises InsufficientStockError naming the first failing ticket type.
        """
        self.require_event(event_id)
        stock = {
            ticket.ticket_type: ticket.remaining_count
            for ticket in self.get_ticket_types(event_id)
        }
        for line in lines:
            if stock.get(line.ticket_type, 0) < line.quantity:
                raise InsufficientStockError(line.ticket_type)

    def reserve(
        self,
        event_id: str,
        lines: Sequence[TicketLine],
    ) -> None:
        """
        Conditional decrement per line. Run inside a transaction or savepoint:
        a later line failing leaves earlier decrements to be rolled back.
        """
        for line in lines:
            stmt = (
                update(EventTicketType)
                .where(EventTicketType.event_id == event_id)
                .where(EventTicketType.ticket_type == line.ticket_type)
                .where(EventTicketType.remaining_count >= line.quantity)
                .values(remaining_count=EventTicketType.remaining_count - line.quantity)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            if result.rowcount != 1:
                raise InsufficientStockError(line.ticket_type)

    def release(
        self,
        event_id: str,
        lines: Sequence[TicketLine],
    ) -> None:
        for line in lines:
            stmt = (
                update(EventTicketType)
                .where(EventTicketType.event_id == event_id)
                .where(EventTicketType.ticket_type == line.ticket_type)
                .where(EventTicketType.remaining_count + line.quantity <= EventTicketType.capacity)
                .values(remaining_count=EventTicketType.remaining_count + line.quantity)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            if result.rowcount != 1:
                raise InvalidStateError(
                    f"Cannot release {line.quantity} x {line.ticket_type}: "
                    "stock would exceed capacity"
                )
