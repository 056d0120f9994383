"""Adapter registry and fan-out.

The registry holds enabled adapters keyed by name and fans each operation
out to every adapter that declares the matching capability. Fan-out is
concurrent and all-settled: each adapter call is wrapped so one failing or
slow adapter never affects its siblings, and the caller gets a
``DispatchResult`` instead of an exception.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog

from tracklayer.adapters.base import Adapter, AdapterRegistration, Capability
from tracklayer.models.events import EventPayload
from tracklayer.utils.exceptions import AdapterDispatchError
from tracklayer.utils.reporting import ErrorReporter, LoggingErrorReporter

logger = structlog.get_logger()


@dataclass
class DispatchResult:
    """Per-adapter outcome of one fan-out."""

    operation: str
    delivered: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True when no adapter failed."""
        return not self.failed


class AdapterRegistry:
    """Registry of destination adapters.

    Example usage:
        registry = AdapterRegistry()
        registry.add(PostHogAdapter(api_key="phc_..."))
        result = await registry.track(event)
        if not result.ok:
            queue.enqueue(event)
    """

    def __init__(self, error_reporter: ErrorReporter | None = None):
        self._registrations: dict[str, AdapterRegistration] = {}
        self.error_reporter = error_reporter or LoggingErrorReporter()
        self.logger = logger.bind(service="adapter_registry")

    def add(self, adapter: Adapter) -> bool:
        """Register an adapter, replacing any adapter with the same name.

        Args:
            adapter: Adapter instance to register.

        Returns:
            True if registered, False if the adapter reported itself disabled.
        """
        registration = AdapterRegistration.for_adapter(adapter)
        if not registration.enabled:
            self.logger.warning("Adapter is disabled, skipping registration", adapter=adapter.name)
            return False

        replaced = registration.name in self._registrations
        self._registrations[registration.name] = registration

        self.logger.info(
            "Adapter registered",
            adapter=registration.name,
            version=adapter.version,
            capabilities=sorted(c.value for c in registration.capabilities),
            replaced=replaced,
        )
        return True

    def remove(self, name: str) -> bool:
        """Remove an adapter by name. Returns False if it was not registered."""
        removed = self._registrations.pop(name, None) is not None
        if removed:
            self.logger.info("Adapter removed", adapter=name)
        return removed

    def get(self, name: str) -> Adapter | None:
        registration = self._registrations.get(name)
        return registration.adapter if registration else None

    def adapters(self) -> list[Adapter]:
        return [r.adapter for r in self._registrations.values()]

    def registrations(self) -> list[AdapterRegistration]:
        return list(self._registrations.values())

    def with_capability(self, capability: Capability) -> list[AdapterRegistration]:
        return [r for r in self._registrations.values() if r.supports(capability)]

    def clear(self) -> None:
        self._registrations.clear()

    def __len__(self) -> int:
        return len(self._registrations)

    def __contains__(self, name: object) -> bool:
        return name in self._registrations

    # Fan-out

    async def track(self, event: EventPayload) -> DispatchResult:
        """Send an event to every consenting adapter that can track."""
        return await self._fan_out(
            "track",
            Capability.TRACK,
            lambda adapter: adapter.track(event),
            event=event,
        )

    async def identify(self, user_id: str, traits: dict[str, Any]) -> DispatchResult:
        return await self._fan_out(
            "identify",
            Capability.IDENTIFY,
            lambda adapter: adapter.identify(user_id, traits),
        )

    async def group(self, group_id: str, traits: dict[str, Any]) -> DispatchResult:
        return await self._fan_out(
            "group",
            Capability.GROUP,
            lambda adapter: adapter.group(group_id, traits),
        )

    async def alias(self, user_id: str, previous_id: str) -> DispatchResult:
        return await self._fan_out(
            "alias",
            Capability.ALIAS,
            lambda adapter: adapter.alias(user_id, previous_id),
        )

    async def _fan_out(
        self,
        operation: str,
        capability: Capability,
        call: Callable[[Any], Awaitable[Any]],
        event: EventPayload | None = None,
    ) -> DispatchResult:
        """Run ``call`` against every capable adapter, all-settled.

        When ``event`` is given, each adapter's consent check gates the call.
        """
        result = DispatchResult(operation=operation)
        registrations = self.with_capability(capability)

        async def run(registration: AdapterRegistration) -> None:
            name = registration.name
            try:
                adapter = registration.adapter
                if event is not None and not adapter.check_consent(event.consent, event.region):
                    result.skipped.append(name)
                    return
                await call(adapter)
                result.delivered.append(name)
            except Exception as e:
                result.failed[name] = str(e)
                error = AdapterDispatchError(name, operation, original_error=str(e))
                self.logger.error(
                    "Adapter call failed",
                    adapter=name,
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                extra = {"dedup_id": event.dedup_id} if event is not None else {}
                self.error_reporter.capture_exception(error, extra)

        await asyncio.gather(*(run(r) for r in registrations))
        return result
