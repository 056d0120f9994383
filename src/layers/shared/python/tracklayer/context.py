"""Application-level wiring.

A ``TrackingContext`` is built once at startup and passed to whatever needs
to track events or read attribution. There are no module-level instances.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from tracklayer.adapters.base import Adapter
from tracklayer.attribution.tracker import AttributionConfig, AttributionTracker, PageContext
from tracklayer.events.bus import EventBus, EventBusConfig
from tracklayer.models.base import Clock, now_ms
from tracklayer.storage.backends import KeyValueBackend
from tracklayer.storage.cookies import CookieJar
from tracklayer.storage.durable import DurableStore
from tracklayer.utils.reporting import ErrorReporter, LoggingErrorReporter

logger = structlog.get_logger()


@dataclass
class TrackingContext:
    """The store, tracker and bus for one browsing context."""

    store: DurableStore
    tracker: AttributionTracker
    bus: EventBus
    error_reporter: ErrorReporter

    async def close(self) -> None:
        await self.bus.close()


def create_tracking_context(
    page: PageContext | None = None,
    backend: KeyValueBackend | None = None,
    cookies: CookieJar | None = None,
    attribution_config: AttributionConfig | None = None,
    bus_config: EventBusConfig | None = None,
    adapters: Iterable[Adapter] = (),
    error_reporter: ErrorReporter | None = None,
    clock: Clock | None = None,
    online: bool = True,
) -> TrackingContext:
    """Build and wire a tracking context.

    The tracker processes the current visit when a page is given. The bus is
    not started; call ``await context.bus.start()`` to begin periodic
    draining.

    Args:
        page: Page being viewed.
        backend: Primary store backend. Defaults to in-memory.
        cookies: Cookie mirror, e.g. seeded from a request header.
        attribution_config: Tracker config. Defaults to ``from_env()``.
        bus_config: Bus config. Defaults to ``from_env()``.
        adapters: Adapters to register.
        error_reporter: Sink for caught exceptions.
        clock: Epoch-ms clock shared by every component.
        online: Initial connectivity.

    Returns:
        The wired context.
    """
    clock = clock or now_ms
    error_reporter = error_reporter or LoggingErrorReporter()

    store = DurableStore(backend=backend, cookies=cookies, clock=clock)
    tracker = AttributionTracker(
        store,
        config=attribution_config or AttributionConfig.from_env(),
        page=page,
        clock=clock,
    )
    bus = EventBus(
        store,
        tracker=tracker,
        config=bus_config or EventBusConfig.from_env(),
        error_reporter=error_reporter,
        clock=clock,
        online=online,
    )

    for adapter in adapters:
        bus.add_adapter(adapter)

    tracker.initialize()

    logger.info(
        "Tracking context created",
        adapters=[adapter.name for adapter in bus.get_adapters()],
        online=online,
    )
    return TrackingContext(store=store, tracker=tracker, bus=bus, error_reporter=error_reporter)
