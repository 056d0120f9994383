"""Tests for the PostHog adapter."""

import json

import httpx
import pytest

from tracklayer.adapters.posthog import DEFAULT_HOST, PostHogAdapter
from tracklayer.models.events import ConsentState, EventPayload
from tracklayer.utils.exceptions import AdapterNotConfiguredError


class CaptureRecorder:
    """httpx mock transport handler that records capture requests."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"status": 1})

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


def make_event(**overrides) -> EventPayload:
    data = {
        "event_id": "event_1",
        "dedup_id": "dedup_1",
        "occurred_at": "2024-10-15T12:00:00.000Z",
        "action": "form_submitted",
        "visitor_id": "visitor_1",
        "session_id": "session_1",
        "region": "US",
    }
    data.update(overrides)
    return EventPayload.model_validate(data)


@pytest.fixture
def recorder():
    return CaptureRecorder()


@pytest.fixture
def adapter(recorder):
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return PostHogAdapter(api_key="phc_test", host="https://ph.example/", client=client)


class TestConfiguration:
    """Tests for enablement and consent."""

    def test_requires_api_key(self):
        """Without a key the adapter reports disabled."""
        assert PostHogAdapter(api_key=None).is_enabled() is False
        assert PostHogAdapter(api_key="phc_x", enabled=False).is_enabled() is False
        assert PostHogAdapter(api_key="phc_x").is_enabled() is True

    def test_from_env(self, monkeypatch):
        """Settings come from POSTHOG_* variables."""
        monkeypatch.setenv("POSTHOG_API_KEY", "phc_env")
        monkeypatch.delenv("POSTHOG_HOST", raising=False)

        adapter = PostHogAdapter.from_env()

        assert adapter.api_key == "phc_env"
        assert adapter.host == DEFAULT_HOST
        assert adapter.is_enabled() is True

    def test_consent(self):
        """Analytics consent rules apply."""
        adapter = PostHogAdapter(api_key="phc_x")

        assert adapter.check_consent(ConsentState(analytics=False), "EU") is False
        assert adapter.check_consent(ConsentState(analytics=True), "EU") is True


class TestMapEvent:
    """Tests for property mapping."""

    def test_minimal_event(self):
        """Core ids are always present and None values are omitted."""
        properties = PostHogAdapter(api_key="phc_x").map_event(make_event())

        assert properties == {
            "$event_id": "event_1",
            "visitor_id": "visitor_1",
            "session_id": "session_1",
            "$timestamp": "2024-10-15T12:00:00.000Z",
        }

    def test_full_event(self):
        """Attribution, device, geo and identity use PostHog naming."""
        event = make_event(
            experience_id="experience_1",
            experience_type="demo",
            step="2",
            label="email",
            value=0,
            attribution_first={"source": "google", "medium": "cpc", "timestamp": "t1"},
            attribution_last={"source": "newsletter", "referrer": "https://mail.example", "timestamp": "t2"},
            click_ids={"gclid": "abc123"},
            device={"ua_hash": "x", "os": "macOS", "browser": "Chrome"},
            geo={"country": "US", "region": "CA"},
            identity={"company_domain": "acme.example", "confidence": 0.9, "provider": "clearbit"},
            enrichment={"title": "CTO", "provider": "apollo"},
        )

        properties = PostHogAdapter(api_key="phc_x").map_event(event)

        assert properties["experience_type"] == "demo"
        assert properties["form_step"] == "2"
        assert properties["form_label"] == "email"
        assert properties["value"] == 0
        assert properties["$initial_utm_source"] == "google"
        assert properties["$initial_utm_medium"] == "cpc"
        assert "$initial_utm_campaign" not in properties
        assert properties["utm_source"] == "newsletter"
        assert properties["$referrer"] == "https://mail.example"
        assert properties["gclid"] == "abc123"
        assert properties["$os"] == "macOS"
        assert properties["$browser"] == "Chrome"
        assert properties["$geoip_country_code"] == "US"
        assert properties["$geoip_subdivision_1_code"] == "CA"
        assert properties["company_domain"] == "acme.example"
        assert properties["identity_confidence"] == 0.9
        assert properties["job_title"] == "CTO"

    def test_payload_wins(self):
        """Payload keys override mapped keys."""
        event = make_event(payload={"session_id": "override", "form_id": "f1"})

        properties = PostHogAdapter(api_key="phc_x").map_event(event)

        assert properties["session_id"] == "override"
        assert properties["form_id"] == "f1"


class TestCapture:
    """Tests for HTTP capture calls."""

    @pytest.mark.asyncio
    async def test_track(self, adapter, recorder):
        """Events are posted to the capture endpoint."""
        await adapter.track(make_event())

        request = recorder.requests[0]
        assert str(request.url) == "https://ph.example/capture/"
        body = recorder.bodies[0]
        assert body["api_key"] == "phc_test"
        assert body["event"] == "form_submitted"
        assert body["distinct_id"] == "visitor_1"
        assert body["timestamp"] == "2024-10-15T12:00:00.000Z"
        assert body["properties"]["$event_id"] == "event_1"

    @pytest.mark.asyncio
    async def test_track_prefers_profile(self, adapter, recorder):
        """A known profile id is used as the distinct id."""
        await adapter.track(make_event(profile_id="profile_1"))

        assert recorder.bodies[0]["distinct_id"] == "profile_1"

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        """Non-success responses raise so the event can be retried."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(CaptureRecorder(status_code=503)))
        adapter = PostHogAdapter(api_key="phc_test", client=client)

        with pytest.raises(httpx.HTTPStatusError):
            await adapter.track(make_event())

    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        """Capturing without a key fails loudly."""
        with pytest.raises(AdapterNotConfiguredError):
            await PostHogAdapter(api_key=None).track(make_event())

    @pytest.mark.asyncio
    async def test_identify(self, adapter, recorder):
        """identify sends $identify with $set traits."""
        await adapter.identify("user_1", {"email": "a@b.example"})

        body = recorder.bodies[0]
        assert body["event"] == "$identify"
        assert body["distinct_id"] == "user_1"
        assert body["properties"] == {"$set": {"email": "a@b.example"}}
        assert "timestamp" not in body

    @pytest.mark.asyncio
    async def test_group(self, adapter, recorder):
        """group sends $groupidentify for the configured group type."""
        await adapter.group("acme.example", {"name": "Acme"})

        body = recorder.bodies[0]
        assert body["event"] == "$groupidentify"
        assert body["properties"] == {
            "$group_type": "company",
            "$group_key": "acme.example",
            "$group_set": {"name": "Acme"},
        }

    @pytest.mark.asyncio
    async def test_alias(self, adapter, recorder):
        """alias links the previous id to the user."""
        await adapter.alias("user_1", "visitor_1")

        body = recorder.bodies[0]
        assert body["event"] == "$create_alias"
        assert body["properties"] == {"distinct_id": "user_1", "alias": "visitor_1"}
