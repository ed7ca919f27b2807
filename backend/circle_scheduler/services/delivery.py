"""Delivery boundary — push and email transports used only by outbox handlers.

The logging implementations are the defaults wired by ``main.py``; real
FCM/SMTP transports plug in behind the same two methods.
"""
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class PushSender(Protocol):
    async def send_push(
        self, user_id: str, title: str, body: str, data: dict[str, Any], priority: str
    ) -> int:
        """Deliver to every device of ``user_id``; returns the success count."""
        ...


class Mailer(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None:
        ...


class LoggingPushSender:
    async def send_push(
        self, user_id: str, title: str, body: str, data: dict[str, Any], priority: str
    ) -> int:
        logger.info("[push:%s] to=%s title=%r data=%s", priority, user_id, title, data)
        return 1


class LoggingMailer:
    async def send(self, to: str, subject: str, body: str) -> None:
        logger.info("[mail] to=%s subject=%r", to, subject)
