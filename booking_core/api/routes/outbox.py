from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from booking_core.api.dependencies import get_db
from booking_core.api.schemas.schemas import OutboxEventResponse
from booking_core.domain.exceptions import NotFoundError
from booking_core.infrastructure.db.models import OutboxEvent
from booking_core.infrastructure.repositories.outbox_repository import (
    STATUS_PENDING,
    OutboxRepository,
)

router = APIRouter(prefix="/outbox", tags=["outbox"])


def _outbox_response(item: OutboxEvent) -> OutboxEventResponse:
    return OutboxEventResponse(
        id=item.id,
        aggregate_type=item.aggregate_type,
        aggregate_id=item.aggregate_id,
        event_type=item.event_type,
        status=item.status,
        attempts=item.attempts,
        created_at=item.created_at.isoformat(),
    )


@router.get("/events", response_model=list[OutboxEventResponse])
def list_outbox_events(
    status_filter: str = STATUS_PENDING,
    limit: int = 50,
    db: Session = Depends(get_db),
):
    events = OutboxRepository(db).list_by_status(status_filter, limit)
    return [_outbox_response(item) for item in events]


@router.post("/events/{event_id}/mark-published", response_model=OutboxEventResponse)
def mark_outbox_event_published(
    event_id: str,
    db: Session = Depends(get_db),
):
    repository = OutboxRepository(db)
    item = repository.get_by_id(event_id)
    if not item:
        raise NotFoundError("Outbox event not found")
    return _outbox_response(repository.mark_published(item))
