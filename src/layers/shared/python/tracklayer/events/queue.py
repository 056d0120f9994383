"""Persisted offline queue with linear-backoff retries.

Entry lifecycle:
- Created when the bus is offline or a dispatch pass had a failing adapter.
- On each drain pass an entry that is not yet due goes back to the front
  untouched. A due entry is dispatched: success removes it; failure bumps
  ``attempts`` and either schedules ``next_retry_at = now + delay * attempts``
  and moves it to the back, or drops it once ``attempts`` reaches the
  retry limit.
- When the queue is full the oldest entry is evicted to admit a new one.

Retried entries move behind newer ones, so delivery order is not FIFO once
retries happen.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog
from pydantic import ValidationError

from tracklayer.models.base import Clock, now_ms
from tracklayer.models.events import EventPayload
from tracklayer.models.queue import QueuedEvent
from tracklayer.storage.durable import DurableStore
from tracklayer.utils.exceptions import QueueOverflowError

logger = structlog.get_logger()

EVENT_QUEUE_KEY = "tracklayer_event_queue"

Dispatch = Callable[[EventPayload], Awaitable[bool]]


@dataclass
class DrainResult:
    """Counts from one drain pass."""

    dispatched: int = 0
    retried: int = 0
    dropped: int = 0
    deferred: int = 0
    evicted: int = 0


class OfflineQueue:
    """Bounded, persisted list of events awaiting delivery."""

    def __init__(
        self,
        store: DurableStore,
        max_size: int = 1000,
        ttl_seconds: int = 24 * 60 * 60,
        clock: Clock | None = None,
    ):
        self.store = store
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.clock = clock or now_ms
        self.logger = logger.bind(service="offline_queue")

    def entries(self) -> list[QueuedEvent]:
        """Load the persisted queue. Malformed entries are skipped."""
        raw = self.store.get_item(EVENT_QUEUE_KEY)
        if not isinstance(raw, list):
            return []

        entries = []
        for data in raw:
            try:
                entries.append(QueuedEvent.model_validate(data))
            except ValidationError as e:
                self.logger.warning("Skipping malformed queue entry", error=str(e))
        return entries

    def __len__(self) -> int:
        return len(self.entries())

    def enqueue(self, event: EventPayload) -> QueuedEvent | None:
        """Append an event, evicting the oldest entry when full.

        Returns:
            The evicted entry, or None.
        """
        entries = self.entries()
        evicted = None
        if len(entries) >= self.max_size:
            evicted = entries.pop(0)
            error = QueueOverflowError(self.max_size, evicted.event.dedup_id)
            self.logger.info(error.message, **error.details)

        entries.append(QueuedEvent(event=event, created_at=self.clock()))
        self._save(entries)
        self.logger.debug("Event queued", dedup_id=event.dedup_id, queue_size=len(entries))
        return evicted

    def clear(self) -> None:
        self.store.remove_item(EVENT_QUEUE_KEY)

    async def drain(
        self,
        dispatch: Dispatch,
        batch_size: int = 10,
        retry_attempts: int = 3,
        retry_delay_ms: int = 2000,
    ) -> DrainResult:
        """Run one delivery pass over the head of the queue.

        The batch is taken off the persisted queue before dispatching, so
        events enqueued while the pass is awaiting adapters are kept.

        Args:
            dispatch: Delivers one event; returns True when every adapter
                accepted it.
            batch_size: Maximum entries processed in this pass.
            retry_attempts: Failed attempts after which an entry is dropped.
            retry_delay_ms: Linear backoff step.

        Returns:
            DrainResult with per-outcome counts.
        """
        result = DrainResult()
        entries = self.entries()
        if not entries:
            return result

        batch, remaining = entries[:batch_size], entries[batch_size:]
        self._save(remaining)

        deferred: list[QueuedEvent] = []
        retry: list[QueuedEvent] = []

        for entry in batch:
            if not entry.is_due(self.clock()):
                deferred.append(entry)
                continue

            try:
                delivered = await dispatch(entry.event)
            except Exception as e:
                self.logger.error("Queued dispatch failed", dedup_id=entry.event.dedup_id, error=str(e))
                delivered = False

            if delivered:
                result.dispatched += 1
                continue

            entry.attempts += 1
            if entry.attempts < retry_attempts:
                entry.next_retry_at = self.clock() + retry_delay_ms * entry.attempts
                retry.append(entry)
                result.retried += 1
            else:
                result.dropped += 1
                self.logger.error(
                    "Event failed after max retries",
                    dedup_id=entry.event.dedup_id,
                    attempts=entry.attempts,
                )

        result.deferred = len(deferred)
        merged = deferred + self.entries() + retry
        while len(merged) > self.max_size:
            merged.pop(0)
            result.evicted += 1

        self._save(merged)
        return result

    def _save(self, entries: list[QueuedEvent]) -> None:
        if not entries:
            self.store.remove_item(EVENT_QUEUE_KEY)
            return
        self.store.set_item(
            EVENT_QUEUE_KEY,
            [entry.to_dict() for entry in entries],
            self.ttl_seconds,
        )
