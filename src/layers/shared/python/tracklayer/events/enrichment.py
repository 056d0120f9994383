"""Event enrichment and validation.

Turns a partial event into a complete ``EventPayload``:

- ``event_id`` and ``occurred_at`` are generated when missing.
- ``visitor_id``, ``session_id``, both attribution touches and click ids
  come from the attribution tracker when missing.
- ``consent`` defaults to all opted out and ``region`` to the configured
  default region.
- ``device`` is derived from the page user agent when missing.
- ``dedup_id`` is derived from visitor, action, experience and timestamp.

Caller-supplied values always win over generated ones.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError

from tracklayer.attribution.tracker import AttributionTracker
from tracklayer.models.base import BaseModel, Clock, iso_from_ms, now_ms
from tracklayer.models.events import ConsentState, EventPayload
from tracklayer.utils.device import get_device_info
from tracklayer.utils.exceptions import EventValidationError
from tracklayer.utils.ids import generate_dedup_id, generate_event_id

logger = structlog.get_logger()

REQUIRED_FIELDS = ("event_id", "action", "visitor_id", "session_id", "dedup_id")

CONTEXT_FIELDS = ("attribution_first", "attribution_last", "click_ids")

# Joined into the derived dedup key, so each must be a string when present.
DEDUP_KEY_FIELDS = ("visitor_id", "action", "experience_id", "occurred_at")


class EventEnricher:
    """Fills defaults on partial events and rejects incomplete ones."""

    def __init__(
        self,
        tracker: AttributionTracker | None = None,
        default_region: str = "US",
        clock: Clock | None = None,
    ):
        self.tracker = tracker
        self.default_region = default_region
        self.clock = clock or now_ms
        self.logger = logger.bind(service="event_enricher")

    def enrich(self, event_data: Mapping[str, Any] | BaseModel) -> EventPayload:
        """Build a complete event from partial data.

        Args:
            event_data: Partial event fields.

        Returns:
            The validated event.

        Raises:
            EventValidationError: If a required field is still missing or a
                field has the wrong shape.
        """
        if isinstance(event_data, BaseModel):
            event_data = event_data.to_dict()

        event: dict[str, Any] = {
            "event_id": generate_event_id(),
            "occurred_at": iso_from_ms(self.clock()),
            "consent": ConsentState().to_dict(exclude_none=False),
            "region": self.default_region,
        }
        event.update({key: value for key, value in event_data.items() if value is not None})

        if isinstance(event.get("action"), Enum):
            event["action"] = event["action"].value

        if self.tracker is not None:
            self._apply_tracker_context(event)

        errors = [
            {"field": name, "message": "Input should be a valid string", "type": "string_type"}
            for name in DEDUP_KEY_FIELDS
            if event.get(name) is not None and not isinstance(event[name], str)
        ]
        if errors:
            raise EventValidationError(errors=errors)

        if not event.get("dedup_id") and event.get("visitor_id") and event.get("action"):
            event["dedup_id"] = generate_dedup_id(
                visitor_id=event["visitor_id"],
                action=event["action"],
                experience_id=event.get("experience_id"),
                timestamp=event["occurred_at"],
            )

        missing = [name for name in REQUIRED_FIELDS if not event.get(name)]
        if missing:
            raise EventValidationError(
                message="Event is missing required fields",
                missing_fields=missing,
            )

        try:
            return EventPayload.model_validate(event)
        except ValidationError as e:
            raise EventValidationError.from_pydantic(e)

    def _apply_tracker_context(self, event: dict[str, Any]) -> None:
        needs_context = not event.get("visitor_id") or not event.get("session_id") or any(
            name not in event for name in CONTEXT_FIELDS
        )
        if needs_context:
            context = self.tracker.get_attribution_context()
            event["visitor_id"] = event.get("visitor_id") or context.visitor_id
            event["session_id"] = event.get("session_id") or context.session_id
            for name in CONTEXT_FIELDS:
                value = getattr(context, name)
                if name not in event and value is not None:
                    event[name] = value.to_dict()

        page = self.tracker.page
        if "device" not in event and page is not None and page.user_agent:
            event["device"] = get_device_info(page.user_agent).to_dict()
