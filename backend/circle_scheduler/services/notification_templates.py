"""Notification templates — one builder per notification type.

Builders are pure: they return an unsaved ``Notification`` and never touch
the session. Times are rendered in the recipient's timezone (backend-side
conversion with pytz, never in the client).
"""
from datetime import datetime, timedelta
from typing import Optional

import pytz

from circle_scheduler.models.circle import Circle
from circle_scheduler.models.event import Event
from circle_scheduler.models.notification import Notification, NotificationPriority, NotificationType
from circle_scheduler.models.rsvp import RsvpStatus

BLUE = "#4A90E2"
ORANGE = "#F5A623"
GREEN = "#7ED321"
RED = "#D0021B"

RSVP_LABELS = {
    RsvpStatus.going: ("Going", GREEN),
    RsvpStatus.not_going: ("Not Going", RED),
    RsvpStatus.maybe: ("Maybe", ORANGE),
}


def conflict_dedupe_key(event_id: str, user_id: str) -> str:
    return f"conflict:{event_id}:{user_id}"


def format_local(moment: Optional[datetime], tz_name: str) -> str:
    """Render an aware UTC datetime in the given IANA zone, e.g. ``Mar 3, 2:00 PM``."""
    if moment is None:
        return "TBD"
    try:
        tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        tz = pytz.utc
    local = moment.astimezone(tz)
    hour = local.strftime("%I").lstrip("0") or "12"
    return f"{local.strftime('%b')} {local.day}, {hour}:{local.strftime('%M %p')}"


def humanize_lead_time(delta: timedelta) -> str:
    minutes = int(delta.total_seconds() // 60)
    if minutes < 60:
        return f"in {minutes} minute{'s' if minutes != 1 else ''}"
    if minutes < 24 * 60:
        hours = minutes // 60
        return f"in {hours} hour{'s' if hours != 1 else ''}"
    days = minutes // (24 * 60)
    return f"in {days} day{'s' if days != 1 else ''}"


def conflict_detected(user_id: str, event: Event, conflicting_id: str, conflicting_title: str) -> Notification:
    return Notification(
        user_id=user_id,
        type=NotificationType.conflict_detected,
        category="event",
        title=f"Conflict Detected: '{event.title}' clashes with '{conflicting_title}'.",
        body="You have overlapping events in your calendar.",
        priority=NotificationPriority.high,
        icon_type="warning",
        icon_color=ORANGE,
        action_buttons=[
            {"label": "Resolve", "action": "resolve", "style": "primary"},
            {"label": "View", "action": "view", "style": "secondary"},
        ],
        data={
            "eventId": event.event_id,
            "circleId": event.circle_id,
            "conflictingEvents": [
                {"id": event.event_id, "title": event.title},
                {"id": conflicting_id, "title": conflicting_title},
            ],
        },
        dedupe_key=conflict_dedupe_key(event.event_id, user_id),
    )


def event_finalized(user_id: str, tz_name: str, event: Event, circle: Circle) -> Notification:
    return Notification(
        user_id=user_id,
        type=NotificationType.event_finalized,
        category="event",
        title=f"Event Finalized: '{event.title}' in {circle.name}",
        body=f"The event is scheduled for {format_local(event.starts_at, tz_name)}.",
        priority=NotificationPriority.normal,
        icon_type="calendar",
        icon_color=BLUE,
        action_buttons=[{"label": "View Event", "action": "view_event", "style": "primary"}],
        data={"eventId": event.event_id, "circleId": event.circle_id},
    )


def event_reminder(user_id: str, event: Event, lead_time: timedelta) -> Notification:
    return Notification(
        user_id=user_id,
        type=NotificationType.event_reminder,
        category="event",
        title=f"Reminder: {event.title} is {humanize_lead_time(lead_time)}",
        body=f"at {event.location or 'TBD'}.",
        priority=NotificationPriority.normal,
        icon_type="calendar",
        icon_color=BLUE,
        action_buttons=[
            {"label": "View Event", "action": "view_event", "style": "primary"},
            {"label": "Dismiss", "action": "dismiss", "style": "secondary"},
        ],
        data={"eventId": event.event_id, "circleId": event.circle_id},
    )


def rsvp_updated(creator_id: str, responder_name: str, event: Event, status: RsvpStatus) -> Notification:
    label, color = RSVP_LABELS[status]
    return Notification(
        user_id=creator_id,
        type=NotificationType.rsvp_updated,
        category="rsvp",
        title=f"{responder_name} has updated their RSVP for '{event.title}' to",
        body=f"{label}.",
        priority=NotificationPriority.normal,
        icon_type="person",
        icon_color=color,
        action_buttons=[],
        data={"eventId": event.event_id, "circleId": event.circle_id, "rsvpStatus": status.value},
    )


def member_joined(owner_id: str, member_name: str, circle: Circle) -> Notification:
    return Notification(
        user_id=owner_id,
        type=NotificationType.member_joined,
        category="circle",
        title=f"{member_name} joined '{circle.name}'",
        body="Your circle now has one more member!",
        priority=NotificationPriority.normal,
        icon_type="person",
        icon_color=GREEN,
        action_buttons=[{"label": "View Circle", "action": "view_circle", "style": "primary"}],
        data={"circleId": circle.circle_id},
    )
