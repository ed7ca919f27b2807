"""Tests for conflict detection and the conflict resolution job.

Covers:
- Personal event overlap (cancelled entries ignored, boundary touch is fine)
- Cross-circle "going" RSVP overlap
- Auto "not going" RSVP + one conflict notification per member
- Manual RSVPs never overwritten
- Job idempotency under retry and after partial failure
- Sync (fixed-time creation) and async (job) paths agree
"""
import pytest
from sqlalchemy.exc import OperationalError

from circle_scheduler.models.notification import Notification, NotificationType
from circle_scheduler.models.outbox_event import OutboxEvent, OutboxEventType
from circle_scheduler.models.rsvp import Rsvp, RsvpSource, RsvpStatus
from circle_scheduler.services import conflict_service, event_service
from circle_scheduler.services.conflict_job import process_event_conflicts
from circle_scheduler.services.conflict_service import CIRCLE, PERSONAL, find_conflict
from circle_scheduler.services.outbox_errors import PermanentOutboxError
from tests.conftest import (
    at,
    make_circle,
    make_personal_event,
    make_rsvp,
    make_scheduled_event,
    make_user,
)


def _rsvps(db, event):
    return db.query(Rsvp).filter(Rsvp.event_id == event.event_id).order_by(Rsvp.user_id).all()


def _conflict_notices(db, user=None):
    query = db.query(Notification).filter(Notification.type == NotificationType.conflict_detected)
    if user is not None:
        query = query.filter(Notification.user_id == user.user_id)
    return query.all()


def _payload(event):
    return {"eventId": event.event_id, "circleId": event.circle_id}


class TestFindConflict:

    def test_overlapping_personal_event(self, db):
        user = make_user(db, "Sam")
        personal = make_personal_event(db, user, at(9, 30), at(10, 30), title="Dentist")
        conflict = find_conflict(db, user.user_id, at(10), at(11), "some-event")
        assert conflict.kind == PERSONAL
        assert conflict.conflicting_id == personal.personal_event_id
        assert conflict.title == "Dentist"

    def test_boundary_touch_is_no_conflict(self, db):
        user = make_user(db, "Sam")
        make_personal_event(db, user, at(9), at(10))
        assert find_conflict(db, user.user_id, at(10), at(11), "some-event") is None

    def test_cancelled_personal_event_ignored(self, db):
        user = make_user(db, "Sam")
        make_personal_event(db, user, at(9, 30), at(10, 30), cancelled=True)
        assert find_conflict(db, user.user_id, at(10), at(11), "some-event") is None

    def test_going_rsvp_in_other_circle(self, db):
        owner = make_user(db, "Owner")
        user = make_user(db, "Sam")
        make_circle(db, owner, members=[user], name="Home")
        other = make_circle(db, owner, members=[user], name="Away")
        busy = make_scheduled_event(db, other, owner, at(10, 30), at(12), title="Hike")
        make_rsvp(db, busy, user, RsvpStatus.going)

        conflict = find_conflict(db, user.user_id, at(10), at(11), "some-event")
        assert conflict.kind == CIRCLE
        assert conflict.conflicting_id == busy.event_id

    @pytest.mark.parametrize("status", [RsvpStatus.maybe, RsvpStatus.not_going])
    def test_non_going_rsvp_is_no_conflict(self, db, status):
        owner = make_user(db, "Owner")
        user = make_user(db, "Sam")
        other = make_circle(db, owner, members=[user], name="Away")
        busy = make_scheduled_event(db, other, owner, at(10, 30), at(12))
        make_rsvp(db, busy, user, status)
        assert find_conflict(db, user.user_id, at(10), at(11), "some-event") is None

    def test_no_rsvp_is_no_conflict(self, db):
        owner = make_user(db, "Owner")
        user = make_user(db, "Sam")
        other = make_circle(db, owner, members=[user], name="Away")
        make_scheduled_event(db, other, owner, at(10, 30), at(12))
        assert find_conflict(db, user.user_id, at(10), at(11), "some-event") is None

    def test_deleted_event_is_no_conflict(self, db, clock):
        owner = make_user(db, "Owner")
        user = make_user(db, "Sam")
        other = make_circle(db, owner, members=[user], name="Away")
        busy = make_scheduled_event(db, other, owner, at(10, 30), at(12), title="Hike")
        make_rsvp(db, busy, user, RsvpStatus.going)
        assert event_service.delete_event(db, busy.event_id, owner.user_id, clock=clock).ok
        assert find_conflict(db, user.user_id, at(10), at(11), "some-event") is None

    def test_event_never_conflicts_with_itself(self, db):
        owner = make_user(db, "Owner")
        circle = make_circle(db, owner)
        event = make_scheduled_event(db, circle, owner, at(10), at(11))
        make_rsvp(db, event, owner, RsvpStatus.going)
        assert find_conflict(db, owner.user_id, at(10), at(11), event.event_id) is None

    def test_personal_checked_before_circles(self, db):
        owner = make_user(db, "Owner")
        user = make_user(db, "Sam")
        other = make_circle(db, owner, members=[user])
        busy = make_scheduled_event(db, other, owner, at(10), at(11))
        make_rsvp(db, busy, user, RsvpStatus.going)
        make_personal_event(db, user, at(10), at(11))
        assert find_conflict(db, user.user_id, at(10), at(11), "some-event").kind == PERSONAL


class TestConflictJob:

    def _finalized(self, db, owner, circle, start=None, end=None):
        return make_scheduled_event(db, circle, owner, start or at(10), end or at(11), title="Picnic")

    def test_conflicted_member_auto_declined(self, db):
        owner = make_user(db, "Owner")
        busy = make_user(db, "Busy")
        free = make_user(db, "Free")
        circle = make_circle(db, owner, members=[busy, free])
        make_personal_event(db, busy, at(9, 30), at(10, 30))
        event = self._finalized(db, owner, circle)

        outcomes = process_event_conflicts(db, _payload(event))

        assert {o.user_id for o in outcomes} == {owner.user_id, busy.user_id, free.user_id}
        rsvps = _rsvps(db, event)
        assert [(r.user_id, r.status, r.source) for r in rsvps] == [
            (busy.user_id, RsvpStatus.not_going, RsvpSource.conflict)
        ]
        notices = _conflict_notices(db)
        assert [n.user_id for n in notices] == [busy.user_id]
        assert notices[0].data["eventId"] == event.event_id
        pushes = db.query(OutboxEvent).filter(OutboxEvent.event_type == OutboxEventType.NOTIFICATION_PUSH).all()
        assert [p.payload for p in pushes] == [{"notificationId": notices[0].notification_id, "userId": busy.user_id}]

    def test_boundary_touch_not_declined(self, db):
        owner = make_user(db, "Owner")
        member = make_user(db, "Member")
        circle = make_circle(db, owner, members=[member])
        make_personal_event(db, member, at(9), at(10))
        event = self._finalized(db, owner, circle)
        process_event_conflicts(db, _payload(event))
        assert _rsvps(db, event) == []
        assert _conflict_notices(db) == []

    def test_manual_going_rsvp_kept(self, db):
        owner = make_user(db, "Owner")
        member = make_user(db, "Member")
        circle = make_circle(db, owner, members=[member])
        make_personal_event(db, member, at(9, 30), at(10, 30))
        event = self._finalized(db, owner, circle)
        make_rsvp(db, event, member, RsvpStatus.going)

        outcomes = process_event_conflicts(db, _payload(event))

        member_outcome = next(o for o in outcomes if o.user_id == member.user_id)
        assert member_outcome.conflict is not None
        assert not member_outcome.rsvp_created
        rsvps = _rsvps(db, event)
        assert [(r.status, r.source) for r in rsvps] == [(RsvpStatus.going, RsvpSource.manual)]
        assert _conflict_notices(db) == []

    def test_cross_circle_going_conflict(self, db):
        owner = make_user(db, "Owner")
        member = make_user(db, "Member")
        circle = make_circle(db, owner, members=[member], name="Book club")
        other = make_circle(db, owner, members=[member], name="Climbing")
        climb = make_scheduled_event(db, other, owner, at(10, 30), at(12), title="Bouldering")
        make_rsvp(db, climb, member, RsvpStatus.going)
        event = self._finalized(db, owner, circle)

        process_event_conflicts(db, _payload(event))

        assert [(r.user_id, r.status) for r in _rsvps(db, event)] == [(member.user_id, RsvpStatus.not_going)]
        notice = _conflict_notices(db, member)[0]
        assert "Bouldering" in notice.title

    def test_rerun_is_idempotent(self, db):
        owner = make_user(db, "Owner")
        members = [make_user(db, f"Member {i}") for i in range(3)]
        circle = make_circle(db, owner, members=members)
        for member in members:
            make_personal_event(db, member, at(10), at(10, 15))
        event = self._finalized(db, owner, circle)

        process_event_conflicts(db, _payload(event))
        second = process_event_conflicts(db, _payload(event))

        assert len(_rsvps(db, event)) == 3
        assert len(_conflict_notices(db)) == 3
        assert not any(o.notified or o.rsvp_created for o in second)
        assert db.query(OutboxEvent).count() == 3

    def test_retry_after_partial_failure(self, db, monkeypatch):
        owner = make_user(db, "Owner")
        members = [make_user(db, f"Member {i}") for i in range(3)]
        circle = make_circle(db, owner, members=members)
        for member in members:
            make_personal_event(db, member, at(10), at(10, 15))
        event = self._finalized(db, owner, circle)

        real_notify = conflict_service.outbox_service.notify
        calls = {"n": 0}

        def flaky_notify(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise OperationalError("INSERT INTO notifications", {}, Exception("database is locked"))
            return real_notify(*args, **kwargs)

        monkeypatch.setattr(conflict_service.outbox_service, "notify", flaky_notify)
        with pytest.raises(OperationalError):
            process_event_conflicts(db, _payload(event))
        db.rollback()

        # Second member got the RSVP but no notice before the failure
        assert len(_rsvps(db, event)) == 2
        assert len(_conflict_notices(db)) == 1

        process_event_conflicts(db, _payload(event))

        rsvps = _rsvps(db, event)
        assert len(rsvps) == 3
        assert len({r.user_id for r in rsvps}) == 3
        notices = _conflict_notices(db)
        assert sorted(n.user_id for n in notices) == sorted(m.user_id for m in members)

    def test_invalid_payload_is_permanent(self, db):
        with pytest.raises(PermanentOutboxError):
            process_event_conflicts(db, {"eventId": "x"})

    def test_missing_event_is_noop(self, db):
        assert process_event_conflicts(db, {"eventId": "gone", "circleId": "gone"}) == []

    def test_circle_mismatch_is_noop(self, db):
        owner = make_user(db, "Owner")
        circle = make_circle(db, owner)
        event = self._finalized(db, owner, circle)
        assert process_event_conflicts(db, {"eventId": event.event_id, "circleId": "elsewhere"}) == []


class TestSyncAndAsyncAgree:

    def _world(self, db):
        owner = make_user(db, "Owner")
        personal_busy = make_user(db, "Personal")
        circle_busy = make_user(db, "Circle")
        free = make_user(db, "Free")
        circle = make_circle(db, owner, members=[personal_busy, circle_busy, free])
        other = make_circle(db, owner, members=[circle_busy], name="Other")
        make_personal_event(db, personal_busy, at(10, 30), at(11, 30))
        busy_event = make_scheduled_event(db, other, owner, at(9), at(10, 30))
        make_rsvp(db, busy_event, circle_busy, RsvpStatus.going)
        return owner, circle, {"personal": personal_busy, "circle": circle_busy, "free": free}

    def _summary(self, db, event):
        return sorted((r.user_id, r.status.value) for r in _rsvps(db, event)), sorted(
            n.user_id for n in _conflict_notices(db) if n.data["eventId"] == event.event_id
        )

    def test_fixed_time_creation_matches_job(self, db, clock):
        owner, circle, users = self._world(db)

        created = event_service.create_event(db, owner.user_id, circle.circle_id, "Sync",
                                             starts_at=at(10), ends_at=at(11), clock=clock).value
        sync_rsvps, sync_notices = self._summary(db, created)

        deferred = make_scheduled_event(db, circle, owner, at(10), at(11), title="Async")
        process_event_conflicts(db, _payload(deferred))
        async_rsvps, async_notices = self._summary(db, deferred)

        expected_declined = sorted([users["personal"].user_id, users["circle"].user_id])
        assert sorted(u for u, s in sync_rsvps if s == "not going") == expected_declined
        assert sorted(u for u, s in async_rsvps if s == "not going") == expected_declined
        assert sync_notices == async_notices == expected_declined


class TestSyncPath:

    def test_member_failure_is_logged_and_skipped(self, db, monkeypatch, caplog):
        owner = make_user(db, "Owner")
        members = [make_user(db, f"Member {i}") for i in range(2)]
        circle = make_circle(db, owner, members=members)
        for member in members:
            make_personal_event(db, member, at(10), at(10, 15))
        event = make_scheduled_event(db, circle, owner, at(10), at(11))

        real_notify = conflict_service.outbox_service.notify
        calls = {"n": 0}

        def flaky_notify(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("INSERT INTO notifications", {}, Exception("database is locked"))
            return real_notify(*args, **kwargs)

        monkeypatch.setattr(conflict_service.outbox_service, "notify", flaky_notify)
        outcomes = conflict_service.detect_conflicts_now(db, event)

        assert len(outcomes) == 2  # owner + the member that did not fail
        assert len(_rsvps(db, event)) == 2
        assert len(_conflict_notices(db)) == 1
        assert "Conflict check failed" in caplog.text
