"""Tests for event enrichment and validation."""

import pytest

from tracklayer.events.enrichment import EventEnricher
from tracklayer.models.events import EventAction, EventPayload
from tracklayer.utils.exceptions import EventValidationError
from tracklayer.utils.ids import generate_dedup_id


class TestEnrichWithoutTracker:
    """Tests for enrichment of self-contained events."""

    def test_fills_defaults(self, clock):
        """Generated ids, timestamp, consent and region are filled in."""
        enricher = EventEnricher(clock=clock)

        event = enricher.enrich(
            {"action": "page_viewed", "visitor_id": "visitor_1", "session_id": "session_1"}
        )

        assert isinstance(event, EventPayload)
        assert event.event_id.startswith("event_")
        assert event.occurred_at == "2024-10-15T12:00:00.000Z"
        assert event.region == "US"
        assert event.consent.analytics is False
        assert event.consent.ads is False
        assert event.consent.marketing is False

    def test_dedup_key_derived(self, clock):
        """The dedup key is built from visitor, action, experience and timestamp."""
        enricher = EventEnricher(clock=clock)

        event = enricher.enrich(
            {
                "action": "form_submitted",
                "visitor_id": "visitor_1",
                "session_id": "session_1",
                "experience_id": "experience_1",
            }
        )

        assert event.dedup_id == generate_dedup_id(
            "visitor_1", "form_submitted", "experience_1", "2024-10-15T12:00:00.000Z"
        )

    def test_caller_values_win(self, clock):
        """Supplied ids, timestamp, region and consent are kept."""
        enricher = EventEnricher(default_region="US", clock=clock)

        event = enricher.enrich(
            {
                "event_id": "event_custom",
                "dedup_id": "dedup_custom",
                "occurred_at": "2024-01-01T00:00:00.000Z",
                "action": "page_viewed",
                "visitor_id": "visitor_1",
                "session_id": "session_1",
                "region": "DE",
                "consent": {"analytics": True},
            }
        )

        assert event.event_id == "event_custom"
        assert event.dedup_id == "dedup_custom"
        assert event.occurred_at == "2024-01-01T00:00:00.000Z"
        assert event.region == "DE"
        assert event.consent.analytics is True

    def test_none_values_ignored(self, clock):
        """Explicit None does not clear a generated default."""
        enricher = EventEnricher(clock=clock)

        event = enricher.enrich(
            {"action": "page_viewed", "visitor_id": "v", "session_id": "s", "event_id": None}
        )

        assert event.event_id.startswith("event_")

    def test_enum_action(self, clock):
        """Enum actions are stored by value."""
        enricher = EventEnricher(clock=clock)

        event = enricher.enrich(
            {"action": EventAction.BUTTON_CLICKED, "visitor_id": "v", "session_id": "s"}
        )

        assert event.action == EventAction.BUTTON_CLICKED.value

    def test_missing_action(self, clock):
        """An event without an action is rejected."""
        enricher = EventEnricher(clock=clock)

        with pytest.raises(EventValidationError) as exc_info:
            enricher.enrich({"visitor_id": "v", "session_id": "s"})

        assert "action" in exc_info.value.missing_fields
        assert exc_info.value.error_code == "VALIDATION_ERROR"

    def test_missing_identity(self, clock):
        """Without a tracker, visitor and session ids must be supplied."""
        enricher = EventEnricher(clock=clock)

        with pytest.raises(EventValidationError) as exc_info:
            enricher.enrich({"action": "page_viewed"})

        missing = exc_info.value.missing_fields
        assert "visitor_id" in missing
        assert "session_id" in missing
        assert "dedup_id" in missing

    def test_wrong_shape(self, clock):
        """Field type errors surface as validation errors."""
        enricher = EventEnricher(clock=clock)

        with pytest.raises(EventValidationError) as exc_info:
            enricher.enrich(
                {"action": "page_viewed", "visitor_id": "v", "session_id": "s", "value": "lots"}
            )

        assert exc_info.value.errors[0]["field"] == "value"

    def test_epoch_timestamp_rejected(self, clock):
        """A numeric occurred_at is a validation error, not a crash."""
        enricher = EventEnricher(clock=clock)

        with pytest.raises(EventValidationError) as exc_info:
            enricher.enrich(
                {
                    "action": "page_viewed",
                    "visitor_id": "v",
                    "session_id": "s",
                    "occurred_at": 1728993600000,
                }
            )

        assert exc_info.value.errors == [
            {"field": "occurred_at", "message": "Input should be a valid string", "type": "string_type"}
        ]

    def test_non_string_experience_rejected(self, clock):
        """Every part of the derived dedup key must be a string."""
        enricher = EventEnricher(clock=clock)

        with pytest.raises(EventValidationError) as exc_info:
            enricher.enrich(
                {"action": "page_viewed", "visitor_id": "v", "session_id": "s", "experience_id": 7}
            )

        assert [error["field"] for error in exc_info.value.errors] == ["experience_id"]

    def test_extra_fields_preserved(self, clock):
        """Unknown caller fields ride along on the event."""
        enricher = EventEnricher(clock=clock)

        event = enricher.enrich(
            {"action": "page_viewed", "visitor_id": "v", "session_id": "s", "ab_bucket": "b"}
        )

        assert event.to_dict()["ab_bucket"] == "b"


class TestEnrichWithTracker:
    """Tests for enrichment from the attribution tracker."""

    def test_identity_from_tracker(self, tracker, clock):
        """Visitor and session ids come from the tracker."""
        enricher = EventEnricher(tracker=tracker, clock=clock)

        event = enricher.enrich({"action": "page_viewed"})

        assert event.visitor_id == tracker.get_visitor_id()
        assert event.session_id == tracker.get_session_id()

    def test_blank_ids_replaced(self, tracker, clock):
        """Empty-string ids are treated as missing."""
        enricher = EventEnricher(tracker=tracker, clock=clock)

        event = enricher.enrich({"action": "page_viewed", "visitor_id": "", "session_id": ""})

        assert event.visitor_id == tracker.get_visitor_id()

    def test_attribution_from_tracker(self, tracker, clock):
        """Touches and click ids are stamped on the event."""
        tracker.process_current_visit()
        enricher = EventEnricher(tracker=tracker, clock=clock)

        event = enricher.enrich({"action": "page_viewed"})

        assert event.attribution_first.source == "google"
        assert event.attribution_last.campaign == "q4"
        assert event.click_ids.gclid == "abc123"

    def test_supplied_attribution_kept(self, tracker, clock):
        """Caller-supplied attribution is not replaced."""
        tracker.process_current_visit()
        enricher = EventEnricher(tracker=tracker, clock=clock)

        event = enricher.enrich(
            {
                "action": "page_viewed",
                "attribution_first": {"source": "partner", "timestamp": "2024-01-01T00:00:00.000Z"},
            }
        )

        assert event.attribution_first.source == "partner"
        assert event.attribution_last.source == "google"

    def test_device_from_user_agent(self, tracker, clock):
        """The device block is derived from the page user agent."""
        enricher = EventEnricher(tracker=tracker, clock=clock)

        event = enricher.enrich({"action": "page_viewed"})

        assert event.device.os == "macOS"
        assert event.device.browser == "Chrome"
        assert event.device.ua_hash
