# booking_core/infrastructure/repositories/outbox_repository.py

from datetime import datetime, timezone
import json

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_core.infrastructure.db.models import OutboxEvent

STATUS_PENDING = "PENDING"
STATUS_PUBLISHED = "PUBLISHED"


class OutboxRepository:

    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict,
        dedupe_key: str,
    ) -> OutboxEvent | None:
        existing = self.db.execute(
            select(OutboxEvent).where(OutboxEvent.dedupe_key == dedupe_key)
        ).scalar_one_or_none()
        if existing:
            return None

        item = OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=json.dumps(payload, sort_keys=True),
            dedupe_key=dedupe_key,
            status=STATUS_PENDING,
            attempts=0,
        )
        self.db.add(item)
        self.db.flush()
        return item

    def list_by_status(self, status_filter: str, limit: int) -> list[OutboxEvent]:
        safe_limit = max(1, min(limit, 200))
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.status == status_filter)
            .order_by(OutboxEvent.created_at)
            .limit(safe_limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_by_id(self, event_id: str) -> OutboxEvent | None:
        return self.db.execute(
            select(OutboxEvent).where(OutboxEvent.id == event_id)
        ).scalar_one_or_none()

    def mark_published(self, item: OutboxEvent) -> OutboxEvent:
        item.status = STATUS_PUBLISHED
        item.published_at = datetime.now(timezone.utc)
        item.attempts += 1
        self.db.flush()
        return item
