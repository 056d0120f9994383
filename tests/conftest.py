"""Pytest configuration and fixtures."""

import os

import pytest

# Set environment variables before imports
os.environ["TABLE_NAME"] = "tracklayer-test"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

# 2024-10-15T12:00:00.000Z
START_MS = 1728993600000


class FakeClock:
    """Controllable epoch-ms clock."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 0, seconds: float = 0, minutes: float = 0) -> None:
        self.now += int(ms + seconds * 1000 + minutes * 60 * 1000)


class RecordingAdapter:
    """Analytics adapter that records calls and can be told to fail."""

    version = "1.0.0"

    def __init__(self, name: str = "recorder", fail: bool = False, enabled: bool = True, consent: bool = True):
        from tracklayer.adapters.base import Capability

        self.name = name
        self.fail = fail
        self.enabled = enabled
        self.consent = consent
        self.capabilities = frozenset(
            {Capability.TRACK, Capability.IDENTIFY, Capability.GROUP, Capability.ALIAS}
        )
        self.tracked = []
        self.identified = []
        self.grouped = []
        self.aliased = []

    def is_enabled(self) -> bool:
        return self.enabled

    def check_consent(self, consent, region) -> bool:
        return self.consent

    async def track(self, event) -> None:
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        self.tracked.append(event)

    async def identify(self, user_id, traits) -> None:
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        self.identified.append((user_id, traits))

    async def group(self, group_id, traits) -> None:
        self.grouped.append((group_id, traits))

    async def alias(self, user_id, previous_id) -> None:
        self.aliased.append((user_id, previous_id))


@pytest.fixture(autouse=True)
def clean_tracklayer_env(monkeypatch):
    """Keep TRACKLAYER_* settings from the host out of tests."""
    for name in list(os.environ):
        if name.startswith("TRACKLAYER_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    """Fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def store(clock):
    """Durable store over an in-memory backend and cookie jar."""
    from tracklayer.storage.cookies import CookieJar
    from tracklayer.storage.durable import DurableStore

    return DurableStore(cookies=CookieJar(clock=clock), clock=clock)


@pytest.fixture
def campaign_page():
    """Landing page reached from a paid Google campaign."""
    from tracklayer.attribution.tracker import PageContext

    return PageContext(
        url="https://site.example/?utm_source=google&utm_medium=cpc&utm_campaign=q4&gclid=abc123",
        referrer="https://google.com/search",
        user_agent=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
        ),
    )


@pytest.fixture
def tracker(store, clock, campaign_page):
    """Attribution tracker on the campaign page."""
    from tracklayer.attribution.tracker import AttributionTracker

    return AttributionTracker(store, page=campaign_page, clock=clock)


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create mocked DynamoDB table."""
    import boto3
    from moto import mock_aws

    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")

        table = dynamodb.create_table(
            TableName="tracklayer-test",
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )

        table.wait_until_exists()

        yield table


@pytest.fixture
def make_adapter():
    """Factory for recording analytics adapters."""
    return RecordingAdapter
