"""Event bus: the public tracking surface.

``track`` runs each event through a fixed pipeline:

1. Enrich: fill ids, timestamps, identity, attribution and the dedup key.
   Incomplete events are dropped and counted.
2. Dedup: events whose key is in the recent window are dropped with a
   warning.
3. Listeners: every registered listener gets the event; listener failures
   are isolated per listener.
4. Dispatch: when online, every capable and consenting adapter gets the
   event concurrently. If any adapter fails, the event is queued once for
   another pass. When offline, the event is queued directly.

Queued events are redelivered to all adapters, including ones that already
accepted them, so an adapter may see an event more than once.

Nothing raised inside the pipeline reaches the caller.
"""

import asyncio
import inspect
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

import structlog

from tracklayer.adapters.base import Adapter
from tracklayer.adapters.registry import AdapterRegistry, DispatchResult
from tracklayer.attribution.tracker import AttributionTracker
from tracklayer.events.dedup import Deduplicator
from tracklayer.events.enrichment import EventEnricher
from tracklayer.events.queue import DrainResult, OfflineQueue
from tracklayer.models.base import BaseModel, Clock, now_ms
from tracklayer.models.events import EventAction, EventPayload
from tracklayer.storage.durable import DurableStore
from tracklayer.utils.env import env_bool, env_int, env_str
from tracklayer.utils.exceptions import EventValidationError, ListenerError
from tracklayer.utils.reporting import ErrorReporter, LoggingErrorReporter

logger = structlog.get_logger()

EventListener = Callable[[EventPayload], Awaitable[None] | None]


@dataclass
class EventBusConfig:
    """Configuration for the event bus."""

    enable_offline_queue: bool = True
    max_queue_size: int = 1000
    retry_attempts: int = 3
    retry_delay_ms: int = 2000  # Linear backoff step
    batch_size: int = 10  # Queue entries per drain pass
    flush_interval_ms: int = 5000
    default_region: str = "US"

    # Dedup window
    dedup_window_size: int = 100
    dedup_ttl_seconds: int = 60 * 60

    queue_ttl_seconds: int = 24 * 60 * 60

    @classmethod
    def from_env(cls) -> "EventBusConfig":
        """Build config from TRACKLAYER_* environment variables."""
        return cls(
            enable_offline_queue=env_bool("TRACKLAYER_ENABLE_OFFLINE_QUEUE", True),
            max_queue_size=env_int("TRACKLAYER_MAX_QUEUE_SIZE", 1000),
            retry_attempts=env_int("TRACKLAYER_RETRY_ATTEMPTS", 3),
            retry_delay_ms=env_int("TRACKLAYER_RETRY_DELAY_MS", 2000),
            batch_size=env_int("TRACKLAYER_BATCH_SIZE", 10),
            flush_interval_ms=env_int("TRACKLAYER_FLUSH_INTERVAL_MS", 5000),
            default_region=env_str("TRACKLAYER_DEFAULT_REGION", "US"),
        )


@dataclass
class BusMetrics:
    """Counters for bus activity."""

    tracked: int = 0
    invalid: int = 0
    duplicates: int = 0
    dispatched: int = 0
    queued: int = 0
    retried: int = 0
    dropped: int = 0
    evicted: int = 0
    listener_errors: int = 0
    adapter_errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class EventBus:
    """Distributes tracked events to listeners and adapters.

    Example usage:
        bus = EventBus(store, tracker=tracker)
        bus.add_adapter(PostHogAdapter.from_env())
        await bus.start()
        await bus.page_view({"experience_id": "experience_01H..."})
        await bus.close()
    """

    def __init__(
        self,
        store: DurableStore,
        tracker: AttributionTracker | None = None,
        config: EventBusConfig | None = None,
        registry: AdapterRegistry | None = None,
        error_reporter: ErrorReporter | None = None,
        clock: Clock | None = None,
        online: bool = True,
    ):
        self.config = config or EventBusConfig()
        self.clock = clock or now_ms
        self.error_reporter = error_reporter or LoggingErrorReporter()
        self.registry = registry or AdapterRegistry(error_reporter=self.error_reporter)
        self.enricher = EventEnricher(
            tracker=tracker,
            default_region=self.config.default_region,
            clock=self.clock,
        )
        self.deduplicator = Deduplicator(
            store,
            max_size=self.config.dedup_window_size,
            ttl_seconds=self.config.dedup_ttl_seconds,
        )
        self.queue = OfflineQueue(
            store,
            max_size=self.config.max_queue_size,
            ttl_seconds=self.config.queue_ttl_seconds,
            clock=self.clock,
        )
        self.metrics = BusMetrics()

        self._listeners: list[EventListener] = []
        self._online = online
        self._draining = False
        self._flush_task: asyncio.Task | None = None
        self.logger = logger.bind(service="event_bus")

    # Adapters

    def add_adapter(self, adapter: Adapter) -> bool:
        return self.registry.add(adapter)

    def remove_adapter(self, name: str) -> bool:
        return self.registry.remove(name)

    def get_adapters(self) -> list[Adapter]:
        return self.registry.adapters()

    # Listeners

    def add_event_listener(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            A function that unregisters the listener. Calling it more than
            once is harmless.
        """
        if listener not in self._listeners:
            self._listeners.append(listener)
        return lambda: self.remove_event_listener(listener)

    def remove_event_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Connectivity

    @property
    def is_online(self) -> bool:
        return self._online

    async def set_online(self, online: bool) -> None:
        """Update connectivity. Going back online drains the queue immediately."""
        was_online = self._online
        self._online = online

        if online and not was_online:
            self.logger.info("Back online, processing queued events", queue_size=self.queue_size())
            await self.flush()
        elif not online and was_online:
            self.logger.info("Offline, queuing events")

    # Tracking

    async def track(self, event_data: Mapping[str, Any] | BaseModel | None = None, **fields: Any) -> None:
        """Track an event. Never raises.

        Args:
            event_data: Partial event fields.
            **fields: Additional fields, applied over ``event_data``.
        """
        self.metrics.tracked += 1
        try:
            await self._track(self._merge(event_data, fields))
        except Exception as e:
            self.logger.error("Failed to track event", error=str(e), error_type=type(e).__name__)
            self.error_reporter.capture_exception(e, {"event_data": repr(event_data)})

    async def page_view(self, event_data: Mapping[str, Any] | None = None, **fields: Any) -> None:
        await self._track_action(EventAction.PAGE_VIEWED, event_data, fields)

    async def form_start(self, event_data: Mapping[str, Any] | None = None, **fields: Any) -> None:
        await self._track_action(EventAction.FORM_STARTED, event_data, fields)

    async def form_submit(self, event_data: Mapping[str, Any] | None = None, **fields: Any) -> None:
        await self._track_action(EventAction.FORM_SUBMITTED, event_data, fields)

    async def form_abandon(self, event_data: Mapping[str, Any] | None = None, **fields: Any) -> None:
        await self._track_action(EventAction.FORM_ABANDONED, event_data, fields)

    async def button_click(self, event_data: Mapping[str, Any] | None = None, **fields: Any) -> None:
        await self._track_action(EventAction.BUTTON_CLICKED, event_data, fields)

    async def link_click(self, event_data: Mapping[str, Any] | None = None, **fields: Any) -> None:
        await self._track_action(EventAction.LINK_CLICKED, event_data, fields)

    async def download_start(self, event_data: Mapping[str, Any] | None = None, **fields: Any) -> None:
        await self._track_action(EventAction.DOWNLOAD_STARTED, event_data, fields)

    async def video_start(self, event_data: Mapping[str, Any] | None = None, **fields: Any) -> None:
        await self._track_action(EventAction.VIDEO_STARTED, event_data, fields)

    async def _track_action(
        self,
        action: EventAction,
        event_data: Mapping[str, Any] | None,
        fields: dict[str, Any],
    ) -> None:
        await self.track({**self._merge(event_data, fields), "action": action.value})

    async def _track(self, data: dict[str, Any]) -> None:
        try:
            event = self.enricher.enrich(data)
        except EventValidationError as e:
            self.metrics.invalid += 1
            self.logger.warning("Invalid event dropped", **e.details)
            return

        if self.deduplicator.is_duplicate(event.dedup_id):
            self.metrics.duplicates += 1
            self.logger.warning("Duplicate event detected, skipping", dedup_id=event.dedup_id)
            return

        await self._notify_listeners(event)

        if self._online:
            delivered = await self._dispatch(event)
            if not delivered:
                if self.config.enable_offline_queue:
                    self._enqueue(event)
                else:
                    self.logger.error("Event not delivered to every adapter", dedup_id=event.dedup_id)
        elif self.config.enable_offline_queue:
            # Queued events count as seen so a resubmission is not queued twice.
            self.deduplicator.mark_processed(event.dedup_id)
            self._enqueue(event)
        else:
            self.logger.warning("Offline with queue disabled, event discarded", dedup_id=event.dedup_id)

    async def _dispatch(self, event: EventPayload) -> bool:
        """One fan-out pass. Returns True when no adapter failed."""
        result = await self.registry.track(event)
        self.deduplicator.mark_processed(event.dedup_id)

        if result.ok:
            self.metrics.dispatched += 1
        else:
            self.metrics.adapter_errors += len(result.failed)
        return result.ok

    def _enqueue(self, event: EventPayload) -> None:
        evicted = self.queue.enqueue(event)
        self.metrics.queued += 1
        if evicted is not None:
            self.metrics.evicted += 1

    async def _notify_listeners(self, event: EventPayload) -> None:
        async def notify(listener: EventListener) -> None:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.metrics.listener_errors += 1
                name = getattr(listener, "__qualname__", repr(listener))
                error = ListenerError(name, original_error=str(e))
                self.logger.error("Listener error", listener=name, error=str(e))
                self.error_reporter.capture_exception(error, {"dedup_id": event.dedup_id})

        await asyncio.gather(*(notify(listener) for listener in list(self._listeners)))

    # Identity

    async def identify(self, user_id: str, traits: dict[str, Any] | None = None) -> None:
        """Send identity traits to every adapter that can identify. Never raises."""
        await self._fan_out("identify", self.registry.identify, user_id, traits or {})

    async def group(self, group_id: str, traits: dict[str, Any] | None = None) -> None:
        await self._fan_out("group", self.registry.group, group_id, traits or {})

    async def alias(self, user_id: str, previous_id: str) -> None:
        await self._fan_out("alias", self.registry.alias, user_id, previous_id)

    async def _fan_out(
        self,
        operation: str,
        call: Callable[..., Awaitable[DispatchResult]],
        *args: Any,
    ) -> None:
        try:
            result = await call(*args)
            self.metrics.adapter_errors += len(result.failed)
        except Exception as e:
            self.logger.error(f"Failed to {operation}", error=str(e))
            self.error_reporter.capture_exception(e, {"operation": operation})

    # Offline queue

    def queue_size(self) -> int:
        return len(self.queue)

    async def flush(self) -> DrainResult | None:
        """Run one drain pass over the offline queue.

        Returns None when skipped: offline, or a drain is already running.
        """
        if self._draining or not self._online:
            return None

        self._draining = True
        try:
            result = await self.queue.drain(
                self._dispatch,
                batch_size=self.config.batch_size,
                retry_attempts=self.config.retry_attempts,
                retry_delay_ms=self.config.retry_delay_ms,
            )
            self.metrics.retried += result.retried
            self.metrics.dropped += result.dropped
            self.metrics.evicted += result.evicted
            if result.dispatched or result.retried or result.dropped:
                self.logger.info("Offline queue drained", **asdict(result))
            return result
        except Exception as e:
            self.logger.error("Failed to drain offline queue", error=str(e))
            self.error_reporter.capture_exception(e, {"operation": "flush"})
            return None
        finally:
            self._draining = False

    async def start(self) -> None:
        """Start the periodic drain task and run an initial drain."""
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.create_task(self._flush_loop())
        await self.flush()

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.flush_interval_ms / 1000)
            await self.flush()

    async def close(self) -> None:
        """Stop the drain task and clear adapters and listeners.

        In-flight adapter calls are not cancelled.
        """
        if self._flush_task is not None:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
            self._flush_task = None

        self.registry.clear()
        self._listeners.clear()
        self.logger.info("Event bus closed")

    @staticmethod
    def _merge(event_data: Mapping[str, Any] | BaseModel | None, fields: dict[str, Any]) -> dict[str, Any]:
        if isinstance(event_data, BaseModel):
            event_data = event_data.to_dict()
        return {**(event_data or {}), **fields}
