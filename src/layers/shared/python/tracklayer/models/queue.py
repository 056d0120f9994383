"""Offline queue entry model."""

from pydantic import Field

from tracklayer.models.base import BaseModel
from tracklayer.models.events import EventPayload


class QueuedEvent(BaseModel):
    """An event waiting for another delivery pass.

    ``attempts`` counts failed retry passes; ``next_retry_at`` is epoch ms
    and is unset until the first failed retry.
    """

    event: EventPayload
    attempts: int = Field(default=0, ge=0)
    created_at: int
    next_retry_at: int | None = None

    def is_due(self, now: int) -> bool:
        """Check if the entry is eligible for a delivery attempt."""
        return self.next_retry_at is None or now >= self.next_retry_at
