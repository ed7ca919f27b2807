"""Outbox dispatcher — single-consumer polling loop over ``outbox_events``.

Every tick claims up to ``batch_size`` due rows (FIFO by ``created_at``)
and runs them one after another:

    pending -> processing -> completed
                          -> pending   (retry_count += 1, while retry_count < max_retries)
                          -> failed    (terminal)

The next poll interval is the only backoff. Unknown event types and
``PermanentOutboxError`` fail the row at once.

There is no row-level claim: running two dispatchers against the same
database can deliver a row twice. Run exactly one per deployment.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from circle_scheduler.clock import Clock, system_clock
from circle_scheduler.config import settings
from circle_scheduler.models.outbox_event import OutboxEvent
from circle_scheduler.repositories.notification_repository import OutboxRepository
from circle_scheduler.services.outbox_errors import PermanentOutboxError
from circle_scheduler.services.outbox_handlers import Handler

logger = logging.getLogger(__name__)

IDLE_LOG_EVERY = timedelta(minutes=1)
PURGE_EVERY = timedelta(hours=1)


class OutboxDispatcher:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        handlers: dict[str, Handler],
        clock: Clock = system_clock,
        poll_interval: Optional[float] = None,
        batch_size: Optional[int] = None,
        retention_days: Optional[int] = None,
    ) -> None:
        self.session_factory = session_factory
        self.handlers = handlers
        self.clock = clock
        self.poll_interval = settings.OUTBOX_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.batch_size = settings.OUTBOX_BATCH_SIZE if batch_size is None else batch_size
        self.retention_days = settings.OUTBOX_RETENTION_DAYS if retention_days is None else retention_days
        self._task: Optional[asyncio.Task] = None
        self._stop_requested: Optional[asyncio.Event] = None
        self._last_idle_log: Optional[datetime] = None
        self._last_purge: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Begin polling on the running event loop."""
        if self.running:
            logger.warning("Outbox dispatcher already running")
            return
        self._stop_requested = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            "Starting outbox dispatcher (interval=%ss, batch=%d)", self.poll_interval, self.batch_size
        )

    async def stop(self) -> None:
        """Cancel the next poll and wait for an in-flight batch to finish."""
        if not self.running:
            return
        self._stop_requested.set()
        await self._task
        self._task = None
        logger.info("Stopped outbox dispatcher")

    def status(self) -> dict:
        return {
            "running": self.running,
            "pollIntervalSeconds": self.poll_interval,
            "batchSize": self.batch_size,
        }

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=self.poll_interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self.process_batch()
                self._maybe_purge()
            except Exception:
                # The loop must outlive a broken tick (e.g. database unavailable).
                logger.exception("Error processing outbox events")

    async def process_batch(self) -> int:
        """Run one tick. Returns the number of rows claimed."""
        db = self.session_factory()
        try:
            now = self.clock.now()
            rows = OutboxRepository(db).find_pending(self.batch_size, now)
            if not rows:
                self._log_idle(now)
                return 0
            logger.info("Processing %d outbox events", len(rows))
            for row in rows:
                await self._process_row(db, row)
            return len(rows)
        finally:
            db.close()

    async def _process_row(self, db: Session, row: OutboxEvent) -> None:
        outbox = OutboxRepository(db)
        outbox_id = row.outbox_id
        outbox.mark_processing(row)
        db.commit()

        handler = self.handlers.get(row.event_type)
        if handler is None:
            logger.warning("Unknown outbox event type %s on row %s", row.event_type, outbox_id)
            outbox.mark_failed(row, f"Unknown event type: {row.event_type}", self.clock.now())
            db.commit()
            return

        try:
            await handler(db, row)
        except PermanentOutboxError as exc:
            db.rollback()
            logger.error("Outbox row %s (%s) failed permanently: %s", outbox_id, row.event_type, exc)
            outbox.mark_failed(row, str(exc), self.clock.now())
            db.commit()
            return
        except Exception as exc:
            db.rollback()
            logger.error("Outbox row %s (%s) failed: %s", outbox_id, row.event_type, exc)
            self._record_failure(db, row, str(exc) or exc.__class__.__name__)
            return

        outbox.mark_completed(row, self.clock.now())
        db.commit()
        logger.info("Processed outbox row %s (%s %s)", outbox_id, row.event_type, row.aggregate_id)

    def _record_failure(self, db: Session, row: OutboxEvent, error: str) -> None:
        outbox = OutboxRepository(db)
        if row.retry_count < row.max_retries:
            outbox.increment_retry(row, error)
            logger.info("Outbox row %s will be retried (%d/%d)", row.outbox_id, row.retry_count, row.max_retries)
        else:
            outbox.mark_failed(row, error, self.clock.now())
            logger.error(
                "Outbox row %s failed after %d retries: %s", row.outbox_id, row.retry_count, error
            )
        db.commit()

    def _log_idle(self, now: datetime) -> None:
        if self._last_idle_log is None or now - self._last_idle_log >= IDLE_LOG_EVERY:
            logger.info("No pending outbox events to process")
            self._last_idle_log = now

    def _maybe_purge(self) -> None:
        now = self.clock.now()
        if self._last_purge is None or now - self._last_purge >= PURGE_EVERY:
            self.purge_processed()
            self._last_purge = now

    def purge_processed(self) -> int:
        """Delete completed/failed rows older than the retention window."""
        cutoff = self.clock.now() - timedelta(days=self.retention_days)
        db = self.session_factory()
        try:
            deleted = OutboxRepository(db).delete_processed_before(cutoff)
            db.commit()
        finally:
            db.close()
        if deleted:
            logger.info("Purged %d processed outbox rows older than %s", deleted, cutoff.isoformat())
        return deleted
