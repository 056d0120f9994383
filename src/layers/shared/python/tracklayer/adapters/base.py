"""Adapter capability contract.

Adapters are plain objects that satisfy ``Adapter`` and declare which
optional operations they support through ``capabilities``. Call sites check
the capability set before calling an operation; there are no inherited
no-op defaults.

A minimal analytics adapter:

    class ConsoleAdapter:
        name = "console"
        version = "1.0.0"
        capabilities = frozenset({Capability.TRACK, Capability.IDENTIFY})

        def is_enabled(self) -> bool:
            return True

        def check_consent(self, consent: ConsentState, region: str) -> bool:
            return analytics_consent(consent, region)

        async def track(self, event: EventPayload) -> None:
            print(event.action)

        async def identify(self, user_id: str, traits: dict) -> None:
            print(user_id, traits)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from tracklayer.models.events import ConsentState, EventPayload

GDPR_REGIONS = frozenset({"EU", "GDPR"})


class Capability(str, Enum):
    """Operations an adapter can declare."""

    TRACK = "track"
    IDENTIFY = "identify"
    GROUP = "group"
    ALIAS = "alias"
    SEND = "send"
    PERSIST = "persist"


@runtime_checkable
class Adapter(Protocol):
    """Core contract every destination satisfies."""

    name: str
    version: str
    capabilities: frozenset[Capability]

    def is_enabled(self) -> bool: ...

    def check_consent(self, consent: ConsentState, region: str) -> bool: ...


class AnalyticsAdapter(Adapter, Protocol):
    """Destination declaring ``track`` and ``identify``.

    ``group`` and ``alias`` are only called when declared in ``capabilities``.
    """

    async def track(self, event: EventPayload) -> None: ...

    async def identify(self, user_id: str, traits: dict[str, Any]) -> None: ...


class GroupCapable(Protocol):
    async def group(self, group_id: str, traits: dict[str, Any]) -> None: ...


class AliasCapable(Protocol):
    async def alias(self, user_id: str, previous_id: str) -> None: ...


@dataclass
class SendResult:
    """Outcome of a notification send."""

    ok: bool
    delivery_id: str | None = None


class NotificationAdapter(Adapter, Protocol):
    """Operational notification channel. Consent-exempt."""

    async def send(
        self,
        channel: str,
        message: str,
        options: dict[str, Any] | None = None,
    ) -> SendResult: ...


@dataclass
class AdapterRegistration:
    """A registered adapter and the capabilities it was registered with."""

    name: str
    adapter: Adapter
    capabilities: frozenset[Capability]
    enabled: bool = True

    @classmethod
    def for_adapter(cls, adapter: Adapter) -> "AdapterRegistration":
        return cls(
            name=adapter.name,
            adapter=adapter,
            capabilities=frozenset(Capability(c) for c in adapter.capabilities),
            enabled=adapter.is_enabled(),
        )

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities


def analytics_consent(consent: ConsentState, region: str) -> bool:
    """Default consent rule for analytics destinations.

    GDPR regions require an explicit opt-in. Elsewhere tracking is allowed
    unless the visitor explicitly opted out.
    """
    if region in GDPR_REGIONS:
        return consent.analytics is True
    return consent.analytics is not False
