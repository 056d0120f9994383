"""Base Pydantic models and time helpers."""

import time
from datetime import datetime, timezone
from typing import Callable

from pydantic import BaseModel as PydanticBaseModel, ConfigDict

# Epoch-millisecond clock. Every time-dependent component accepts one.
Clock = Callable[[], int]


def now_ms() -> int:
    """Get the current time in epoch milliseconds."""
    return int(time.time() * 1000)


def iso_from_ms(epoch_ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string."""
    dt = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BaseModel(PydanticBaseModel):
    """Base model for tracklayer records.

    Records are persisted as JSON in the durable store and handed to
    adapters as plain dicts, so serialization always goes through
    ``model_dump(mode="json")``.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        validate_assignment=True,
    )

    def to_dict(self, exclude_none: bool = True) -> dict:
        """Serialize to a JSON-compatible dict."""
        return self.model_dump(mode="json", exclude_none=exclude_none)
