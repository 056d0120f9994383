"""PostHog analytics adapter.

Sends events through PostHog's public capture endpoint. Attribution uses
PostHog's naming: first touch as ``$initial_utm_*``, last touch as
``utm_*``.
"""

from typing import Any

import httpx
import structlog

from tracklayer.adapters.base import Capability, analytics_consent
from tracklayer.models.events import ConsentState, EventPayload
from tracklayer.utils.env import env_bool, env_str
from tracklayer.utils.exceptions import AdapterNotConfiguredError

logger = structlog.get_logger()

DEFAULT_HOST = "https://app.posthog.com"


class PostHogAdapter:
    """Analytics adapter for PostHog."""

    name = "posthog"
    version = "1.0.0"
    capabilities = frozenset(
        {Capability.TRACK, Capability.IDENTIFY, Capability.GROUP, Capability.ALIAS}
    )

    def __init__(
        self,
        api_key: str | None,
        host: str = DEFAULT_HOST,
        enabled: bool = True,
        group_type: str = "company",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.host = host.rstrip("/")
        self.enabled = enabled
        self.group_type = group_type
        self.timeout = timeout
        self._client = client
        self.logger = logger.bind(service="posthog_adapter")

    @classmethod
    def from_env(cls, client: httpx.AsyncClient | None = None) -> "PostHogAdapter":
        return cls(
            api_key=env_str("POSTHOG_API_KEY", ""),
            host=env_str("POSTHOG_HOST", DEFAULT_HOST),
            enabled=env_bool("POSTHOG_ENABLED", True),
            client=client,
        )

    def is_enabled(self) -> bool:
        return self.enabled and bool(self.api_key)

    def check_consent(self, consent: ConsentState, region: str) -> bool:
        return analytics_consent(consent, region)

    async def track(self, event: EventPayload) -> None:
        await self._capture(
            event=event.action,
            distinct_id=event.profile_id or event.visitor_id,
            properties=self.map_event(event),
            timestamp=event.occurred_at,
        )
        self.logger.debug("Event captured", action=event.action, event_id=event.event_id)

    async def identify(self, user_id: str, traits: dict[str, Any]) -> None:
        await self._capture("$identify", user_id, {"$set": traits})

    async def group(self, group_id: str, traits: dict[str, Any]) -> None:
        await self._capture(
            "$groupidentify",
            group_id,
            {
                "$group_type": self.group_type,
                "$group_key": group_id,
                "$group_set": traits,
            },
        )

    async def alias(self, user_id: str, previous_id: str) -> None:
        await self._capture(
            "$create_alias",
            user_id,
            {"distinct_id": user_id, "alias": previous_id},
        )

    def map_event(self, event: EventPayload) -> dict[str, Any]:
        """Map an event to PostHog capture properties.

        Keys whose value is None are omitted. Payload keys are applied last
        and win over mapped keys.
        """
        properties: dict[str, Any] = {
            "$event_id": event.event_id,
            "visitor_id": event.visitor_id,
            "session_id": event.session_id,
            "$timestamp": event.occurred_at,
        }

        if event.experience_id:
            properties["experience_id"] = event.experience_id
            properties["experience_type"] = event.experience_type

        if event.step:
            properties["form_step"] = event.step
        if event.label:
            properties["form_label"] = event.label
        if event.value is not None:
            properties["value"] = event.value
        if event.variant:
            properties["variant"] = event.variant

        if event.attribution_first:
            first = event.attribution_first
            properties.update(
                {
                    "$initial_utm_source": first.source,
                    "$initial_utm_medium": first.medium,
                    "$initial_utm_campaign": first.campaign,
                    "$initial_utm_term": first.term,
                    "$initial_utm_content": first.content,
                    "$initial_referrer": first.referrer,
                }
            )

        if event.attribution_last:
            last = event.attribution_last
            properties.update(
                {
                    "utm_source": last.source,
                    "utm_medium": last.medium,
                    "utm_campaign": last.campaign,
                    "utm_term": last.term,
                    "utm_content": last.content,
                    "$referrer": last.referrer,
                }
            )

        if event.click_ids:
            properties.update(event.click_ids.to_dict())

        if event.device:
            properties["$os"] = event.device.os
            properties["$browser"] = event.device.browser

        if event.geo:
            properties["$geoip_country_code"] = event.geo.country
            properties["$geoip_subdivision_1_code"] = event.geo.region

        if event.identity:
            identity = event.identity
            properties.update(
                {
                    "company_domain": identity.company_domain,
                    "company_name": identity.company_name,
                    "employee_count": identity.employee_count,
                    "industry": identity.industry,
                    "identity_confidence": identity.confidence,
                    "identity_provider": identity.provider,
                }
            )

        if event.enrichment:
            enrichment = event.enrichment
            properties.update(
                {
                    "job_title": enrichment.title,
                    "seniority": enrichment.seniority,
                    "department": enrichment.department,
                    "linkedin_url": enrichment.linkedin_url,
                    "company_size_bucket": enrichment.company_size_bucket,
                    "tech_tags": enrichment.tech_tags,
                    "enrichment_provider": enrichment.provider,
                }
            )

        if event.payload:
            properties.update(event.payload)

        return {key: value for key, value in properties.items() if value is not None}

    async def _capture(
        self,
        event: str,
        distinct_id: str,
        properties: dict[str, Any],
        timestamp: str | None = None,
    ) -> None:
        if not self.api_key:
            raise AdapterNotConfiguredError(self.name, "PostHog API key not configured")

        body: dict[str, Any] = {
            "api_key": self.api_key,
            "event": event,
            "distinct_id": distinct_id,
            "properties": properties,
        }
        if timestamp:
            body["timestamp"] = timestamp

        url = f"{self.host}/capture/"
        if self._client is not None:
            response = await self._client.post(url, json=body)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=body)

        response.raise_for_status()
