"""Rolling window of recently processed dedup keys."""

from tracklayer.storage.durable import DurableStore

RECENT_EVENTS_KEY = "tracklayer_recent_event_ids"


class Deduplicator:
    """Membership check against the last ``max_size`` processed dedup keys.

    The buffer is persisted with a short TTL that is refreshed on every
    write, so it empties after ``ttl_seconds`` without new events.
    """

    def __init__(self, store: DurableStore, max_size: int = 100, ttl_seconds: int = 3600):
        self.store = store
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds

    def recent_ids(self) -> list[str]:
        recent = self.store.get_item(RECENT_EVENTS_KEY)
        return recent if isinstance(recent, list) else []

    def is_duplicate(self, dedup_id: str) -> bool:
        return dedup_id in self.recent_ids()

    def mark_processed(self, dedup_id: str) -> None:
        """Record a key, dropping the oldest once the buffer is full."""
        recent = self.recent_ids()
        recent.append(dedup_id)
        if len(recent) > self.max_size:
            recent = recent[-self.max_size :]

        self.store.set_item(RECENT_EVENTS_KEY, recent, self.ttl_seconds)

    def clear(self) -> None:
        self.store.remove_item(RECENT_EVENTS_KEY)
