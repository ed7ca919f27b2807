"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from circle_scheduler.config import settings
from circle_scheduler.database import Base, SessionLocal, engine

# Import routers
from circle_scheduler.routers import calendar, circles, events, health, invitations, users

# Import all models so Base.metadata knows about them
from circle_scheduler.models.user import User                      # noqa: F401
from circle_scheduler.models.circle import Circle, CircleMember    # noqa: F401
from circle_scheduler.models.invitation import CircleInvitation   # noqa: F401
from circle_scheduler.models.event import Event, EventTimeOption, TimeVote  # noqa: F401
from circle_scheduler.models.rsvp import Rsvp                      # noqa: F401
from circle_scheduler.models.personal_event import PersonalEvent   # noqa: F401
from circle_scheduler.models.notification import Notification      # noqa: F401
from circle_scheduler.models.outbox_event import OutboxEvent       # noqa: F401

from circle_scheduler.services.delivery import LoggingMailer, LoggingPushSender
from circle_scheduler.services.outbox_dispatcher import OutboxDispatcher
from circle_scheduler.services.outbox_handlers import build_handlers

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Circle Scheduler",
    description="Group scheduling for circles — time-option voting, conflict detection and outbox delivery",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(circles.router, prefix="/api/circles", tags=["Circles"])
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(invitations.router, prefix="/api/invitations", tags=["Invitations"])
app.include_router(calendar.router, prefix="/api/calendar", tags=["Calendar"])
app.include_router(health.router, prefix="/api", tags=["Health"])

app.state.dispatcher = OutboxDispatcher(
    session_factory=SessionLocal,
    handlers=build_handlers(LoggingPushSender(), LoggingMailer()),
)


@app.on_event("startup")
async def on_startup():
    """Create database tables (SQLite dev mode) and start the outbox loop."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    if settings.OUTBOX_DISPATCHER_ENABLED:
        app.state.dispatcher.start()


@app.on_event("shutdown")
async def on_shutdown():
    await app.state.dispatcher.stop()
