"""Outbox handlers, one per ``event_type``.

A handler is ``async def handler(db, row) -> None``. It signals failure by
raising; the dispatcher decides between retry and terminal failure.
``PermanentOutboxError`` skips the retries.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable

from sqlalchemy.orm import Session

from circle_scheduler.config import settings
from circle_scheduler.models.notification import NotificationPriority
from circle_scheduler.models.outbox_event import OutboxEvent, OutboxEventType
from circle_scheduler.repositories.event_repository import EventRepository
from circle_scheduler.repositories.notification_repository import NotificationRepository
from circle_scheduler.services.conflict_job import process_event_conflicts
from circle_scheduler.services.delivery import Mailer, PushSender
from circle_scheduler.services.outbox_errors import PermanentOutboxError

logger = logging.getLogger(__name__)

Handler = Callable[[Session, OutboxEvent], Awaitable[None]]


def _require(payload: dict[str, Any], *keys: str) -> list[Any]:
    missing = [k for k in keys if not payload.get(k)]
    if missing:
        raise PermanentOutboxError(f"Payload is missing {', '.join(missing)}")
    return [payload[k] for k in keys]


def build_handlers(push_sender: PushSender, mailer: Mailer) -> dict[str, Handler]:
    """Map every known outbox event type to its handler."""

    async def push_notification(db: Session, row: OutboxEvent) -> None:
        notification_id, user_id = _require(row.payload or {}, "notificationId", "userId")
        notification = NotificationRepository(db).get(notification_id)
        if notification is None:
            raise LookupError(f"Notification {notification_id} not found")

        data = {
            "notificationId": notification.notification_id,
            "type": notification.type.value,
            "category": notification.category,
        }
        for key in ("eventId", "circleId"):
            if (notification.data or {}).get(key):
                data[key] = notification.data[key]
        priority = "high" if notification.priority == NotificationPriority.high else "normal"

        delivered = await push_sender.send_push(user_id, notification.title, notification.body, data, priority)
        if delivered == 0:
            # Nothing to deliver to; retrying would not change that.
            logger.info("No registered device for user %s; notification %s not pushed", user_id, notification_id)
            return
        logger.info("Sent push notification %s to %s (%d devices)", notification_id, user_id, delivered)

    async def event_reminder(db: Session, row: OutboxEvent) -> None:
        if EventRepository(db).get(row.aggregate_id) is None:
            logger.info("Event %s no longer exists; dropping reminder row %s", row.aggregate_id, row.outbox_id)
            return
        await push_notification(db, row)

    async def process_conflicts(db: Session, row: OutboxEvent) -> None:
        # The scan is blocking ORM work; keep it off the event loop.
        await asyncio.to_thread(process_event_conflicts, db, row.payload or {})

    async def email_invitation(db: Session, row: OutboxEvent) -> None:
        payload = row.payload or {}
        email, token, circle_name = _require(payload, "email", "token", "circleName")
        inviter = payload.get("inviterName") or "Someone"
        if payload.get("isRegistered"):
            link = f"{settings.APP_BASE_URL}/invitations/{token}"
            action = "Open the app to accept"
        else:
            link = f"{settings.APP_BASE_URL}/signup?invitation={token}"
            action = "Create an account to join"
        await mailer.send(
            email,
            f"{inviter} invited you to {circle_name}",
            f"{inviter} invited you to join the circle '{circle_name}'.\n{action}: {link}\n",
        )
        logger.info("Sent invitation email to %s for circle %s", email, circle_name)

    async def email_magic_link(db: Session, row: OutboxEvent) -> None:
        email, token = _require(row.payload or {}, "email", "token")
        await mailer.send(
            email,
            "Your sign-in link",
            f"Use this link to sign in: {settings.APP_BASE_URL}/auth/magic?token={token}\n",
        )
        logger.info("Sent magic link email to %s", email)

    async def email_verification(db: Session, row: OutboxEvent) -> None:
        user_id, email, token = _require(row.payload or {}, "userId", "email", "token")
        await mailer.send(
            email,
            "Verify your email address",
            f"Confirm your address: {settings.APP_BASE_URL}/auth/verify?token={token}\n",
        )
        logger.info("Sent verification email to %s (user %s)", email, user_id)

    return {
        OutboxEventType.NOTIFICATION_PUSH: push_notification,
        # Reminders are pushes enqueued with scheduled_for; skipped once the event is deleted.
        OutboxEventType.NOTIFICATION_REMINDER: event_reminder,
        OutboxEventType.PROCESS_CONFLICTS: process_conflicts,
        OutboxEventType.EMAIL_INVITATION: email_invitation,
        OutboxEventType.EMAIL_MAGIC_LINK: email_magic_link,
        OutboxEventType.EMAIL_VERIFICATION: email_verification,
    }
