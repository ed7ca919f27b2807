"""Pytest fixtures — per-test SQLite database, fixed clock and delivery fakes."""
import os
from datetime import datetime, timedelta, timezone

# Settings are read at import time; keep the app off the real database and
# never start the background dispatcher under TestClient.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["OUTBOX_DISPATCHER_ENABLED"] = "false"

import pytest
from sqlalchemy import event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from circle_scheduler.database import Base, build_engine, get_db
from circle_scheduler.main import app
from circle_scheduler.models.circle import Circle, CircleMember, CircleRole
from circle_scheduler.models.event import Event, EventStatus
from circle_scheduler.models.personal_event import PersonalEvent
from circle_scheduler.models.rsvp import Rsvp, RsvpSource, RsvpStatus
from circle_scheduler.models.user import User
from circle_scheduler.routers.common import get_clock

T0 = datetime(2030, 3, 4, 8, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day_offset: int = 0) -> datetime:
    """A UTC instant on the test day."""
    return T0.replace(hour=hour, minute=minute) + timedelta(days=day_offset)


class FixedClock:
    def __init__(self, now: datetime = T0):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingPushSender:
    def __init__(self, fail_times: int = 0):
        self.sent = []
        self.fail_times = fail_times

    async def send_push(self, user_id, title, body, data, priority):
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("push gateway unavailable")
        self.sent.append({"user_id": user_id, "title": title, "body": body, "data": data, "priority": priority})
        return 1


class RecordingMailer:
    def __init__(self):
        self.sent = []

    async def send(self, to, subject, body):
        self.sent.append({"to": to, "subject": subject, "body": body})


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Create a fresh SQLite engine for each test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")

    # WAL lets the dispatcher's own sessions write while a test session reads
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def push_sender():
    return RecordingPushSender()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture(scope="function")
def client(session_factory, clock):
    """FastAPI TestClient with the database and clock dependencies overridden."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers: direct database factories
# ---------------------------------------------------------------------------
def make_user(db, name: str = "Test User", tz: str = "UTC", email: str = None) -> User:
    user = User(display_name=name, default_timezone=tz, email=email)
    db.add(user)
    db.commit()
    return user


def make_circle(db, owner: User, members=(), admins=(), name: str = "Test Circle") -> Circle:
    """Circle owned by ``owner`` with the given extra members."""
    circle = Circle(name=name, created_by=owner.user_id)
    db.add(circle)
    db.flush()
    db.add(CircleMember(circle_id=circle.circle_id, user_id=owner.user_id, role=CircleRole.owner))
    for user in admins:
        db.add(CircleMember(circle_id=circle.circle_id, user_id=user.user_id, role=CircleRole.admin))
    for user in members:
        db.add(CircleMember(circle_id=circle.circle_id, user_id=user.user_id, role=CircleRole.member))
    db.commit()
    return circle


def make_scheduled_event(db, circle: Circle, creator: User, start: datetime, end: datetime,
                         title: str = "Scheduled", status: EventStatus = EventStatus.finalized) -> Event:
    """An event with a committed time, written straight to the store."""
    event_row = Event(circle_id=circle.circle_id, creator_id=creator.user_id, title=title,
                      status=status, starts_at=start, ends_at=end)
    db.add(event_row)
    db.commit()
    return event_row


def make_personal_event(db, user: User, start: datetime, end: datetime,
                        title: str = "Dentist", cancelled: bool = False) -> PersonalEvent:
    personal = PersonalEvent(user_id=user.user_id, title=title, start_time=start, end_time=end, cancelled=cancelled)
    db.add(personal)
    db.commit()
    return personal


def make_rsvp(db, event_row: Event, user: User, status: RsvpStatus = RsvpStatus.going,
              source: RsvpSource = RsvpSource.manual) -> Rsvp:
    rsvp = Rsvp(event_id=event_row.event_id, user_id=user.user_id, status=status, source=source)
    db.add(rsvp)
    db.commit()
    return rsvp


# ---------------------------------------------------------------------------
# Helpers: API
# ---------------------------------------------------------------------------
def create_test_user(client: TestClient, name: str = "Test User", tz: str = "America/New_York",
                     email: str = None) -> dict:
    """Helper — POST /api/users and return response JSON."""
    resp = client.post("/api/users/", json={
        "display_name": name,
        "default_timezone": tz,
        "email": email,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_circle(client: TestClient, creator_id: str, name: str = "Test Circle") -> dict:
    """Helper — POST /api/circles and return response JSON."""
    resp = client.post("/api/circles/", json={
        "name": name,
        "created_by": creator_id,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def add_test_member(client: TestClient, circle_id: str, owner_id: str, user_id: str, role: str = "member") -> dict:
    resp = client.post(
        f"/api/circles/{circle_id}/members",
        params={"actor_user_id": owner_id},
        json={"user_id": user_id, "role": role},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()
