from datetime import datetime

from sqlalchemy.orm import Session

from booking_core.domain.exceptions import ValidationError
from booking_core.infrastructure.db.models import Event, EventTicketType
from booking_core.infrastructure.repositories.inventory_repository import InventoryRepository


class EventService:
    """Host-side event setup and read access to live ticket counts."""

    def __init__(self, db: Session):
        self.inventory_repository = InventoryRepository(db)

    def create_event(
        self,
        host_id: str,
        title: str,
        venue: str,
        starts_at: datetime,
        ticket_types: list[tuple[str, int, int]],
    ) -> tuple[Event, list[EventTicketType]]:
        if not ticket_types:
            raise ValidationError("An event needs at least one ticket type")
        names = [name for name, _, _ in ticket_types]
        if len(set(names)) != len(names):
            raise ValidationError("Ticket type names must be unique within an event")

        event = self.inventory_repository.create_event(
            host_id=host_id,
            title=title,
            venue=venue,
            starts_at=starts_at,
            ticket_types=ticket_types,
        )
        return event, self.inventory_repository.get_ticket_types(event.id)

    def get_event(self, event_id: str) -> tuple[Event, list[EventTicketType]]:
        event = self.inventory_repository.require_event(event_id)
        return event, self.inventory_repository.get_ticket_types(event.id)
