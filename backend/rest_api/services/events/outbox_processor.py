"""
Outbox processor for publishing change notifications from the outbox table.

Reads PENDING events and hands them to an EventSink (Redis in production):
- Batch processing, oldest first
- PROCESSING status so parallel workers never publish a row twice
- Retry up to settings.outbox_max_retries, then FAILED

Runs as a background task started in the FastAPI lifespan, or once on
demand through process_pending_events_once().
"""

import asyncio
import json
from collections.abc import Callable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from rest_api.models import OutboxEvent, OutboxStatus, ensure_utc, utcnow
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from shared.infrastructure.events import ChangeEvent, EventSink, RedisEventSink

logger = get_logger(__name__)


def to_change_event(event: OutboxEvent) -> ChangeEvent:
    """Rebuild the wire event from a stored outbox row."""
    payload = json.loads(event.payload)
    created_at = ensure_utc(event.created_at)
    return ChangeEvent(
        entity=event.aggregate_type,
        kind=event.event_type,
        restaurant_id=event.restaurant_id,
        record=payload.get("record", {}),
        actor=payload.get("actor", {}),
        ts=created_at.isoformat() if created_at else None,
    )


class OutboxProcessor:
    """
    Processes outbox events and publishes them to the event sink.

    Status transitions: PENDING -> PROCESSING -> PUBLISHED, or back to
    PENDING for a retry, or FAILED once retries are exhausted.
    """

    def __init__(
        self,
        sink: EventSink | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        batch_size: int | None = None,
        max_retries: int | None = None,
        poll_interval: float | None = None,
    ):
        self._sink = sink if sink is not None else RedisEventSink()
        self._session_factory = session_factory
        self._batch_size = batch_size or settings.outbox_batch_size
        self._max_retries = max_retries or settings.outbox_max_retries
        self._poll_interval = poll_interval or settings.outbox_poll_interval
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the processor loop."""
        if self._running:
            logger.warning("Outbox processor already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Outbox processor started")

    async def stop(self) -> None:
        """Stop the processor gracefully."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Outbox processor stopped")

    async def _run_loop(self) -> None:
        """Main processing loop."""
        while self._running:
            try:
                processed = await self.process_batch()
                if processed == 0:
                    await asyncio.sleep(self._poll_interval)
            except Exception as e:
                logger.error("Outbox processor error", error=str(e))
                await asyncio.sleep(self._poll_interval)

    async def process_batch(self) -> int:
        """
        Process a batch of PENDING events.

        Returns:
            Number of events published
        """
        db = self._session_factory()
        try:
            events = db.execute(
                select(OutboxEvent)
                .where(OutboxEvent.status == OutboxStatus.PENDING)
                .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
                .limit(self._batch_size)
                .with_for_update(skip_locked=True)  # Parallel workers skip claimed rows
            ).scalars().all()

            if not events:
                return 0

            event_ids = [e.id for e in events]
            db.execute(
                update(OutboxEvent)
                .where(OutboxEvent.id.in_(event_ids))
                .values(status=OutboxStatus.PROCESSING)
            )
            db.commit()

            published = 0
            for event in events:
                if await self._publish_event(event):
                    event.status = OutboxStatus.PUBLISHED
                    event.processed_at = utcnow()
                    published += 1
                else:
                    event.retry_count += 1
                    if event.retry_count >= self._max_retries:
                        event.status = OutboxStatus.FAILED
                        logger.error(
                            "Outbox event failed after max retries",
                            event_id=event.id,
                            event_type=event.event_type,
                        )
                    else:
                        event.status = OutboxStatus.PENDING

            db.commit()
            logger.info("Outbox batch processed", total=len(events), published=published)
            return published

        except Exception as e:
            db.rollback()
            logger.error("Outbox batch processing failed", error=str(e))
            return 0
        finally:
            db.close()

    async def _publish_event(self, event: OutboxEvent) -> bool:
        try:
            await self._sink.publish(to_change_event(event))
            return True
        except Exception as e:
            event.last_error = str(e)
            logger.error(
                "Failed to publish outbox event",
                event_id=event.id,
                event_type=event.event_type,
                error=str(e),
            )
            return False


# Singleton instance
_processor: OutboxProcessor | None = None


def get_outbox_processor() -> OutboxProcessor:
    """Get the singleton outbox processor instance."""
    global _processor
    if _processor is None:
        _processor = OutboxProcessor()
    return _processor


async def start_outbox_processor() -> None:
    """Start the outbox processor (call in FastAPI lifespan startup)."""
    await get_outbox_processor().start()


async def stop_outbox_processor() -> None:
    """Stop the outbox processor (call in FastAPI lifespan shutdown)."""
    await get_outbox_processor().stop()


async def process_pending_events_once() -> int:
    """
    Process pending outbox events once (manual triggering).

    Returns:
        Number of events published
    """
    return await get_outbox_processor().process_batch()
