"""Repositories for notifications and the outbox table."""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from circle_scheduler.models.notification import Notification
from circle_scheduler.models.outbox_event import OutboxEvent, OutboxStatus


class NotificationRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, notification_id: str) -> Optional[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.notification_id == notification_id)
            .first()
        )

    def find_by_dedupe_key(self, dedupe_key: str) -> Optional[Notification]:
        return self.db.query(Notification).filter(Notification.dedupe_key == dedupe_key).first()

    def add(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.db.flush()
        return notification


class OutboxRepository:
    """Data access for the outbox. Only the dispatcher mutates existing rows."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict[str, Any],
        max_retries: int,
        scheduled_for: Optional[datetime] = None,
    ) -> OutboxEvent:
        row = OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=payload,
            status=OutboxStatus.pending,
            retry_count=0,
            max_retries=max_retries,
            scheduled_for=scheduled_for,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def find_pending(self, limit: int, now: datetime) -> list[OutboxEvent]:
        """Pending rows that are due, oldest first."""
        return (
            self.db.query(OutboxEvent)
            .filter(
                OutboxEvent.status == OutboxStatus.pending,
                or_(OutboxEvent.scheduled_for.is_(None), OutboxEvent.scheduled_for <= now),
            )
            .order_by(OutboxEvent.created_at.asc(), OutboxEvent.outbox_id.asc())
            .limit(limit)
            .all()
        )

    def mark_processing(self, row: OutboxEvent) -> None:
        row.status = OutboxStatus.processing
        self.db.flush()

    def mark_completed(self, row: OutboxEvent, now: datetime) -> None:
        row.status = OutboxStatus.completed
        row.processed_at = now
        row.last_error = None
        self.db.flush()

    def mark_failed(self, row: OutboxEvent, error: str, now: datetime) -> None:
        row.status = OutboxStatus.failed
        row.last_error = error
        row.processed_at = now
        self.db.flush()

    def increment_retry(self, row: OutboxEvent, error: str) -> None:
        """Count one failed attempt and return the row to the queue."""
        row.retry_count += 1
        row.status = OutboxStatus.pending
        row.last_error = error
        self.db.flush()

    def delete_processed_before(self, cutoff: datetime) -> int:
        deleted = (
            self.db.query(OutboxEvent)
            .filter(
                OutboxEvent.status.in_([OutboxStatus.completed, OutboxStatus.failed]),
                OutboxEvent.processed_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return deleted
