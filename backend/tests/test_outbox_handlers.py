"""Tests for the outbox handlers wired through the dispatcher.

Covers:
- Push delivery payload and priority, transport retries
- Email invitations for registered and unregistered addresses
- Magic-link and verification emails
- Malformed payloads fail without retries
- Finalize -> conflict job -> conflict push, end to end
"""
import asyncio

from circle_scheduler.config import settings
from circle_scheduler.models.notification import Notification, NotificationPriority, NotificationType
from circle_scheduler.models.outbox_event import OutboxEvent, OutboxEventType, OutboxStatus
from circle_scheduler.models.rsvp import Rsvp, RsvpSource, RsvpStatus
from circle_scheduler.services import circle_service, event_service, outbox_service
from circle_scheduler.services.outbox_dispatcher import OutboxDispatcher
from circle_scheduler.services.outbox_handlers import build_handlers
from tests.conftest import RecordingPushSender, at, make_circle, make_personal_event, make_user


def _dispatcher(session_factory, clock, push_sender, mailer):
    return OutboxDispatcher(session_factory, build_handlers(push_sender, mailer), clock=clock, poll_interval=0.01)


def _drain(dispatcher, rounds: int = 5) -> None:
    for _ in range(rounds):
        if asyncio.run(dispatcher.process_batch()) == 0:
            return


def _rows(db, event_type=None):
    db.rollback()
    query = db.query(OutboxEvent)
    if event_type:
        query = query.filter(OutboxEvent.event_type == event_type)
    return query.order_by(OutboxEvent.outbox_id).all()


def _queue_notice(db, user, priority=NotificationPriority.normal):
    notification = Notification(
        user_id=user.user_id,
        type=NotificationType.event_finalized,
        title="Event Finalized: 'Picnic' in Friends",
        body="The event is scheduled for Mon 3:00 PM.",
        priority=priority,
        data={"eventId": "event-1", "circleId": "circle-1", "ignored": True},
    )
    outbox_service.notify(db, notification, aggregate_type="event", aggregate_id="event-1")
    db.commit()
    return notification


class ZeroDeviceSender(RecordingPushSender):
    async def send_push(self, user_id, title, body, data, priority):
        return 0


class TestPushHandler:

    def test_push_carries_notification_fields(self, db, session_factory, clock, push_sender, mailer):
        user = make_user(db, "Ada")
        notification = _queue_notice(db, user)

        _drain(_dispatcher(session_factory, clock, push_sender, mailer))

        assert len(push_sender.sent) == 1
        sent = push_sender.sent[0]
        assert sent["user_id"] == user.user_id
        assert sent["title"] == "Event Finalized: 'Picnic' in Friends"
        assert sent["priority"] == "normal"
        assert sent["data"] == {
            "notificationId": notification.notification_id,
            "type": "event_finalized",
            "category": "event",
            "eventId": "event-1",
            "circleId": "circle-1",
        }
        assert _rows(db)[0].status == OutboxStatus.completed

    def test_high_priority_maps_to_high(self, db, session_factory, clock, push_sender, mailer):
        user = make_user(db, "Ada")
        _queue_notice(db, user, priority=NotificationPriority.high)
        _drain(_dispatcher(session_factory, clock, push_sender, mailer))
        assert push_sender.sent[0]["priority"] == "high"

    def test_transport_failure_is_retried(self, db, session_factory, clock, mailer):
        user = make_user(db, "Ada")
        _queue_notice(db, user)
        sender = RecordingPushSender(fail_times=1)
        dispatcher = _dispatcher(session_factory, clock, sender, mailer)

        asyncio.run(dispatcher.process_batch())
        row = _rows(db)[0]
        assert row.status == OutboxStatus.pending
        assert row.retry_count == 1
        assert "push gateway unavailable" in row.last_error

        asyncio.run(dispatcher.process_batch())
        assert _rows(db)[0].status == OutboxStatus.completed
        assert len(sender.sent) == 1

    def test_user_without_devices_completes(self, db, session_factory, clock, mailer):
        user = make_user(db, "Ada")
        _queue_notice(db, user)
        asyncio.run(_dispatcher(session_factory, clock, ZeroDeviceSender(), mailer).process_batch())
        row = _rows(db)[0]
        assert row.status == OutboxStatus.completed
        assert row.retry_count == 0
        assert row.last_error is None

    def test_missing_notification_is_retried(self, db, session_factory, clock, push_sender, mailer):
        user = make_user(db, "Ada")
        outbox_service.enqueue(db, "notification", "gone", OutboxEventType.NOTIFICATION_PUSH,
                               {"notificationId": "gone", "userId": user.user_id})
        db.commit()
        asyncio.run(_dispatcher(session_factory, clock, push_sender, mailer).process_batch())
        row = _rows(db)[0]
        assert row.status == OutboxStatus.pending
        assert "not found" in row.last_error
        assert push_sender.sent == []

    def test_payload_without_ids_fails_permanently(self, db, session_factory, clock, push_sender, mailer):
        outbox_service.enqueue(db, "notification", "x", OutboxEventType.NOTIFICATION_PUSH, {})
        db.commit()
        asyncio.run(_dispatcher(session_factory, clock, push_sender, mailer).process_batch())
        row = _rows(db)[0]
        assert row.status == OutboxStatus.failed
        assert row.retry_count == 0


class TestEmailHandlers:

    def test_invitation_to_registered_user(self, db, session_factory, clock, push_sender, mailer):
        owner = make_user(db, "Owner")
        make_user(db, "Grace", email="grace@example.com")
        circle = make_circle(db, owner, name="Book Club")
        assert circle_service.invite_by_email(db, circle.circle_id, owner.user_id, "grace@example.com").ok

        _drain(_dispatcher(session_factory, clock, push_sender, mailer))

        assert len(mailer.sent) == 1
        mail = mailer.sent[0]
        assert mail["to"] == "grace@example.com"
        assert mail["subject"] == "Owner invited you to Book Club"
        assert f"{settings.APP_BASE_URL}/invitations/" in mail["body"]

    def test_invitation_to_unknown_address(self, db, session_factory, clock, push_sender, mailer):
        owner = make_user(db, "Owner")
        circle = make_circle(db, owner, name="Book Club")
        assert circle_service.invite_by_email(db, circle.circle_id, owner.user_id, "new@example.com").ok

        _drain(_dispatcher(session_factory, clock, push_sender, mailer))

        assert "/signup?invitation=" in mailer.sent[0]["body"]

    def test_magic_link(self, db, session_factory, clock, push_sender, mailer):
        outbox_service.enqueue(db, "user", "u1", OutboxEventType.EMAIL_MAGIC_LINK,
                               {"email": "ada@example.com", "token": "tok123"})
        db.commit()
        _drain(_dispatcher(session_factory, clock, push_sender, mailer))
        assert mailer.sent[0]["to"] == "ada@example.com"
        assert "token=tok123" in mailer.sent[0]["body"]

    def test_verification(self, db, session_factory, clock, push_sender, mailer):
        outbox_service.enqueue(db, "user", "u1", OutboxEventType.EMAIL_VERIFICATION,
                               {"userId": "u1", "email": "ada@example.com", "token": "v-456"})
        db.commit()
        _drain(_dispatcher(session_factory, clock, push_sender, mailer))
        assert mailer.sent[0]["subject"] == "Verify your email address"
        assert "/auth/verify?token=v-456" in mailer.sent[0]["body"]

    def test_invitation_missing_email_fails_permanently(self, db, session_factory, clock, push_sender, mailer):
        outbox_service.enqueue(db, "circle", "c1", OutboxEventType.EMAIL_INVITATION,
                               {"token": "t", "circleName": "Book Club"})
        db.commit()
        _drain(_dispatcher(session_factory, clock, push_sender, mailer))
        row = _rows(db)[0]
        assert row.status == OutboxStatus.failed
        assert "email" in row.last_error
        assert mailer.sent == []


class TestFinalizeEndToEnd:

    def test_conflict_scan_and_pushes(self, db, session_factory, clock, push_sender, mailer):
        owner = make_user(db, "Owner")
        busy = make_user(db, "Busy")
        free = make_user(db, "Free")
        circle = make_circle(db, owner, members=[busy, free], name="Friends")
        make_personal_event(db, busy, at(9, 30), at(10, 30), title="Dentist")

        created = event_service.create_event(db, owner.user_id, circle.circle_id, "Picnic",
                                             time_options=[(at(9), at(10))])
        assert created.ok
        event_id = created.value.event_id
        assert event_service.finalize_event(db, event_id, owner.user_id, clock=clock).ok

        _drain(_dispatcher(session_factory, clock, push_sender, mailer))

        assert all(row.status == OutboxStatus.completed for row in _rows(db))
        rsvps = {r.user_id: r for r in db.query(Rsvp).filter(Rsvp.event_id == event_id)}
        assert rsvps[busy.user_id].status == RsvpStatus.not_going
        assert rsvps[busy.user_id].source == RsvpSource.conflict
        assert free.user_id not in rsvps

        titles = [(s["user_id"], s["title"]) for s in push_sender.sent]
        assert (busy.user_id, "Conflict Detected: 'Picnic' clashes with 'Dentist'.") in titles
        assert sum(1 for _, title in titles if title.startswith("Event Finalized")) == 3
        assert sum(1 for _, title in titles if title.startswith("Conflict Detected")) == 1


class TestReminderHandler:

    def _finalized_with_reminder(self, db, clock):
        owner = make_user(db, "Owner")
        guest = make_user(db, "Guest")
        circle = make_circle(db, owner, members=[guest], name="Friends")
        created = event_service.create_event(db, owner.user_id, circle.circle_id, "Picnic",
                                             reminder_minutes=60, time_options=[(at(12), at(13))])
        assert created.ok
        assert event_service.finalize_event(db, created.value.event_id, owner.user_id, clock=clock).ok
        return owner, created.value.event_id

    def test_due_reminder_is_pushed(self, db, session_factory, clock, push_sender, mailer):
        self._finalized_with_reminder(db, clock)
        clock.advance(hours=3)
        _drain(_dispatcher(session_factory, clock, push_sender, mailer))

        reminders = [s for s in push_sender.sent if s["title"].startswith("Reminder: Picnic")]
        assert len(reminders) == 2
        assert all(r.status == OutboxStatus.completed for r in _rows(db, OutboxEventType.NOTIFICATION_REMINDER))

    def test_reminder_for_deleted_event_is_dropped(self, db, session_factory, clock, push_sender, mailer):
        owner, event_id = self._finalized_with_reminder(db, clock)
        assert event_service.delete_event(db, event_id, owner.user_id, clock=clock).ok
        clock.advance(hours=3)
        _drain(_dispatcher(session_factory, clock, push_sender, mailer))

        assert not any(s["title"].startswith("Reminder") for s in push_sender.sent)
        reminders = _rows(db, OutboxEventType.NOTIFICATION_REMINDER)
        assert len(reminders) == 2
        assert all(r.status == OutboxStatus.completed for r in reminders)
