"""Event distribution: enrichment, dedup, offline queue and the bus."""

from tracklayer.events.bus import BusMetrics, EventBus, EventBusConfig, EventListener
from tracklayer.events.dedup import RECENT_EVENTS_KEY, Deduplicator
from tracklayer.events.enrichment import REQUIRED_FIELDS, EventEnricher
from tracklayer.events.queue import EVENT_QUEUE_KEY, DrainResult, OfflineQueue

__all__ = [
    "BusMetrics",
    "Deduplicator",
    "DrainResult",
    "EVENT_QUEUE_KEY",
    "EventBus",
    "EventBusConfig",
    "EventEnricher",
    "EventListener",
    "OfflineQueue",
    "RECENT_EVENTS_KEY",
    "REQUIRED_FIELDS",
]
