"""Producers for the outbox table.

``enqueue`` and ``notify`` never commit: rows are added to the caller's
session so they land in the same transaction as the change that caused
them. ``run_secondary`` wraps such writes when they follow a primary commit.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from circle_scheduler.config import settings
from circle_scheduler.models.notification import Notification
from circle_scheduler.models.outbox_event import OutboxEvent, OutboxEventType
from circle_scheduler.repositories.notification_repository import NotificationRepository, OutboxRepository

logger = logging.getLogger(__name__)


def enqueue(
    db: Session,
    aggregate_type: str,
    aggregate_id: str,
    event_type: str,
    payload: dict[str, Any],
    scheduled_for: Optional[datetime] = None,
    max_retries: Optional[int] = None,
) -> OutboxEvent:
    """Add one pending work item to the outbox."""
    row = OutboxRepository(db).create(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        max_retries=settings.OUTBOX_MAX_RETRIES if max_retries is None else max_retries,
        scheduled_for=scheduled_for,
    )
    logger.debug("Enqueued %s for %s %s", event_type, aggregate_type, aggregate_id)
    return row


def notify(
    db: Session,
    notification: Notification,
    aggregate_type: str,
    aggregate_id: str,
    event_type: str = OutboxEventType.NOTIFICATION_PUSH,
    scheduled_for: Optional[datetime] = None,
) -> tuple[Notification, OutboxEvent]:
    """Persist a notification and the outbox row that will push it."""
    NotificationRepository(db).add(notification)
    row = enqueue(
        db,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload={"notificationId": notification.notification_id, "userId": notification.user_id},
        scheduled_for=scheduled_for,
    )
    return notification, row


def run_secondary(db: Session, description: str, effect: Callable[[], Any]) -> None:
    """Run a follow-up write after the primary commit, in its own transaction.

    Store failures are rolled back and logged; they never reach the caller
    of the primary operation.
    """
    try:
        effect()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Secondary effect '%s' failed: %s", description, exc)
