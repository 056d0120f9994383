"""Destination adapters and the registry that fans events out to them."""

from tracklayer.adapters.base import (
    Adapter,
    AdapterRegistration,
    AliasCapable,
    AnalyticsAdapter,
    Capability,
    GroupCapable,
    NotificationAdapter,
    SendResult,
    analytics_consent,
)
from tracklayer.adapters.persistence import DynamoDBPersistenceAdapter
from tracklayer.adapters.posthog import PostHogAdapter
from tracklayer.adapters.registry import AdapterRegistry, DispatchResult
from tracklayer.adapters.slack import SlackAdapter

__all__ = [
    "Adapter",
    "AdapterRegistration",
    "AdapterRegistry",
    "AliasCapable",
    "AnalyticsAdapter",
    "Capability",
    "DispatchResult",
    "DynamoDBPersistenceAdapter",
    "GroupCapable",
    "NotificationAdapter",
    "PostHogAdapter",
    "SendResult",
    "SlackAdapter",
    "analytics_consent",
]
