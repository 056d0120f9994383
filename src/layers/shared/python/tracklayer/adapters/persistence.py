"""DynamoDB persistence adapter.

Stores visitors, sessions, profiles, events and the records hanging off them
in a single table. Key layout:

    VISITOR#{visitor_id}      META                          visitor
    VISITOR#{visitor_id}      SESSION#{session_id}          session
    VISITOR#{visitor_id}      PROFILE                       profile (one per visitor)
    VISITOR#{visitor_id}      EVENT#{occurred_at}#{event_id} event
    VISITOR#{visitor_id}      IDENTITY#{resolved_at}#{id}   resolved company identity
    VISITOR#{visitor_id}      ATTRIBUTION#{kind}            first / last touch
    EXPERIENCE#{experience_id} SUBMISSION#{occurred_at}#{id} form submission
    PROFILE#{profile_id}      ENRICHMENT#{applied_at}#{id}  enrichment
    ALERT_RULE#{rule_id}      ALERT#{sent_at}#{event_id}    alert sent

The adapter is consent-exempt: persistence backs core functionality. Its
``track`` records the event.
"""

import asyncio
from decimal import Decimal
from typing import Any, Literal

import boto3
import structlog
from botocore.exceptions import ClientError

from tracklayer.adapters.base import Capability
from tracklayer.models.base import Clock, iso_from_ms, now_ms
from tracklayer.models.events import ConsentState, EventPayload
from tracklayer.utils.env import env_str
from tracklayer.utils.ids import generate_id, generate_profile_id

logger = structlog.get_logger()

AttributionKind = Literal["first", "last"]

ATTRIBUTION_FIELDS = ("source", "medium", "campaign", "term", "content", "referrer")


def to_dynamodb_value(value: Any) -> Any:
    """Recursively convert a JSON-like value for DynamoDB.

    Floats become Decimal and None values are dropped from dicts.
    """
    if isinstance(value, dict):
        return {k: to_dynamodb_value(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [to_dynamodb_value(item) for item in value]
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def from_dynamodb_value(value: Any) -> Any:
    """Recursively convert Decimals back to int or float."""
    if isinstance(value, dict):
        return {k: from_dynamodb_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamodb_value(item) for item in value]
    if isinstance(value, Decimal):
        if value % 1 == 0:
            return int(value)
        return float(value)
    return value


def set_clause(assignments: dict[str, str]) -> tuple[str, dict[str, str]]:
    """Build a ``SET`` expression with every attribute name aliased as ``#name``.

    Values in ``assignments`` may use ``if_not_exists(#name, :value)``.
    """
    expression = "SET " + ", ".join(f"#{name} = {value}" for name, value in assignments.items())
    return expression, {f"#{name}": name for name in assignments}


class DynamoDBPersistenceAdapter:
    """Persistence-class adapter backed by a DynamoDB single table."""

    name = "dynamodb"
    version = "1.0.0"
    capabilities = frozenset({Capability.TRACK, Capability.PERSIST})

    def __init__(
        self,
        table_name: str | None = None,
        enabled: bool = True,
        clock: Clock | None = None,
    ):
        """Initialize the adapter.

        Args:
            table_name: DynamoDB table name. Defaults to TABLE_NAME env var.
            enabled: Whether the adapter accepts registration.
            clock: Epoch-ms clock used for record timestamps.
        """
        self.table_name = table_name or env_str("TABLE_NAME", "tracklayer-dev")
        self.enabled = enabled
        self.clock = clock or now_ms
        self._dynamodb = None
        self._table = None
        self.logger = logger.bind(service="dynamodb_persistence")

    @property
    def dynamodb(self):
        """Get DynamoDB resource (lazy initialization)."""
        if self._dynamodb is None:
            self._dynamodb = boto3.resource("dynamodb")
        return self._dynamodb

    @property
    def table(self):
        """Get DynamoDB table (lazy initialization)."""
        if self._table is None:
            self._table = self.dynamodb.Table(self.table_name)
        return self._table

    def is_enabled(self) -> bool:
        return self.enabled

    def check_consent(self, consent: ConsentState, region: str) -> bool:
        return True

    def _now(self) -> str:
        return iso_from_ms(self.clock())

    # Adapter surface

    async def track(self, event: EventPayload) -> None:
        await self.record_event(event)

    # Core entities

    async def upsert_visitor(self, visitor_id: str, metadata: dict[str, Any] | None = None) -> None:
        expression, names = set_clause(
            {
                "visitor_id": ":vid",
                "metadata": ":metadata",
                "last_seen_at": ":now",
                "created_at": "if_not_exists(#created_at, :now)",
            }
        )
        await asyncio.to_thread(
            self.table.update_item,
            Key={"PK": f"VISITOR#{visitor_id}", "SK": "META"},
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues={
                ":vid": visitor_id,
                ":metadata": to_dynamodb_value(metadata or {}),
                ":now": self._now(),
            },
        )
        self.logger.debug("Visitor upserted", visitor_id=visitor_id)

    async def upsert_session(
        self,
        session_id: str,
        visitor_id: str,
        region: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        expression, names = set_clause(
            {
                "session_id": ":sid",
                "visitor_id": ":vid",
                "region": ":region",
                "metadata": ":metadata",
                "started_at": "if_not_exists(#started_at, :now)",
            }
        )
        await asyncio.to_thread(
            self.table.update_item,
            Key={"PK": f"VISITOR#{visitor_id}", "SK": f"SESSION#{session_id}"},
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues={
                ":sid": session_id,
                ":vid": visitor_id,
                ":region": region,
                ":metadata": to_dynamodb_value(metadata or {}),
                ":now": self._now(),
            },
        )

    async def upsert_profile(
        self,
        visitor_id: str,
        profile_id: str | None = None,
        email: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        company: str | None = None,
        title: str | None = None,
        phone: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Create or update the visitor's profile.

        A visitor has at most one profile; its id is assigned on first write
        and kept afterwards.

        Returns:
            The profile id.
        """
        fields = {
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
            "company": company,
            "title": title,
            "phone": phone,
        }
        assignments = {
            "id": "if_not_exists(#id, :id)",
            "visitor_id": ":vid",
            "metadata": ":metadata",
            "updated_at": ":now",
        }
        values: dict[str, Any] = {
            ":id": profile_id or generate_profile_id(),
            ":vid": visitor_id,
            ":metadata": to_dynamodb_value(metadata or {}),
            ":now": self._now(),
        }
        for field_name, value in fields.items():
            if value is not None:
                assignments[field_name] = f":{field_name}"
                values[f":{field_name}"] = value

        expression, names = set_clause(assignments)
        response = await asyncio.to_thread(
            self.table.update_item,
            Key={"PK": f"VISITOR#{visitor_id}", "SK": "PROFILE"},
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
        saved_id = response["Attributes"]["id"]
        self.logger.info("Profile upserted", visitor_id=visitor_id, profile_id=saved_id)
        return saved_id

    # Events and submissions

    async def record_event(self, event: EventPayload) -> None:
        """Insert an event. Re-recording the same event id is a no-op."""
        extras = event.to_dict()
        payload = {
            **(event.payload or {}),
            **{
                key: extras[key]
                for key in (
                    "attribution_first",
                    "attribution_last",
                    "click_ids",
                    "device",
                    "geo",
                    "identity",
                    "enrichment",
                    "alert_meta",
                )
                if key in extras
            },
        }
        item = {
            "PK": f"VISITOR#{event.visitor_id}",
            "SK": f"EVENT#{event.occurred_at}#{event.event_id}",
            "id": event.event_id,
            "occurred_at": event.occurred_at,
            "experience_id": event.experience_id,
            "session_id": event.session_id,
            "visitor_id": event.visitor_id,
            "profile_id": event.profile_id,
            "action": event.action,
            "step": event.step,
            "label": event.label,
            "value": event.value,
            "variant": event.variant,
            "payload": payload,
            "consent": event.consent.to_dict(),
            "region": event.region,
            "dedup_id": event.dedup_id,
        }

        try:
            await asyncio.to_thread(
                self.table.put_item,
                Item=to_dynamodb_value(item),
                ConditionExpression="attribute_not_exists(PK)",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] != "ConditionalCheckFailedException":
                raise
            self.logger.debug("Event already recorded", event_id=event.event_id)

    async def record_submission(
        self,
        experience_id: str,
        profile_id: str,
        payload: dict[str, Any],
    ) -> None:
        now = self._now()
        await asyncio.to_thread(
            self.table.put_item,
            Item=to_dynamodb_value(
                {
                    "PK": f"EXPERIENCE#{experience_id}",
                    "SK": f"SUBMISSION#{now}#{generate_id()}",
                    "experience_id": experience_id,
                    "profile_id": profile_id,
                    "payload": payload,
                    "occurred_at": now,
                }
            )
        )

    # Identity and enrichment

    async def save_identity(
        self,
        visitor_id: str,
        provider: str,
        payload: dict[str, Any],
        confidence: float,
    ) -> None:
        now = self._now()
        await asyncio.to_thread(
            self.table.put_item,
            Item=to_dynamodb_value(
                {
                    "PK": f"VISITOR#{visitor_id}",
                    "SK": f"IDENTITY#{now}#{generate_id()}",
                    "visitor_id": visitor_id,
                    "provider": provider,
                    "payload": payload,
                    "confidence": confidence,
                    "resolved_at": now,
                }
            )
        )

    async def save_enrichment(
        self,
        profile_id: str,
        provider: str,
        payload: dict[str, Any],
    ) -> None:
        now = self._now()
        await asyncio.to_thread(
            self.table.put_item,
            Item=to_dynamodb_value(
                {
                    "PK": f"PROFILE#{profile_id}",
                    "SK": f"ENRICHMENT#{now}#{generate_id()}",
                    "profile_id": profile_id,
                    "provider": provider,
                    "payload": payload,
                    "applied_at": now,
                }
            )
        )

    # Alerts

    async def save_alert(
        self,
        rule_id: str,
        event_id: str,
        channel: str,
        throttled: bool = False,
    ) -> None:
        now = self._now()
        await asyncio.to_thread(
            self.table.put_item,
            Item={
                "PK": f"ALERT_RULE#{rule_id}",
                "SK": f"ALERT#{now}#{event_id}",
                "rule_id": rule_id,
                "event_id": event_id,
                "channel": channel,
                "throttled": throttled,
                "sent_at": now,
            }
        )

    # Attribution

    async def save_attribution(
        self,
        visitor_id: str,
        kind: AttributionKind,
        source: str | None = None,
        medium: str | None = None,
        campaign: str | None = None,
        term: str | None = None,
        content: str | None = None,
        referrer: str | None = None,
        click_ids: dict[str, Any] | None = None,
    ) -> None:
        """Save a first or last touch for a visitor.

        Uses if_not_exists for first touch so it is only set on the initial
        write and never overwritten. Last touch is replaced every time.
        """
        if kind not in ("first", "last"):
            raise ValueError(f"Unknown attribution kind: {kind}")

        values: dict[str, Any] = {
            ":vid": visitor_id,
            ":kind": kind,
            ":source": source,
            ":medium": medium,
            ":campaign": campaign,
            ":term": term,
            ":content": content,
            ":referrer": referrer,
            ":click_ids": to_dynamodb_value(click_ids or {}),
            ":now": self._now(),
        }

        assignments = {
            "visitor_id": ":vid",
            "kind": ":kind",
            **{field_name: f":{field_name}" for field_name in ATTRIBUTION_FIELDS},
            "click_ids": ":click_ids",
            "timestamp": ":now",
        }
        if kind == "first":
            assignments = {
                name: f"if_not_exists(#{name}, {value})" for name, value in assignments.items()
            }

        expression, names = set_clause(assignments)
        await asyncio.to_thread(
            self.table.update_item,
            Key={"PK": f"VISITOR#{visitor_id}", "SK": f"ATTRIBUTION#{kind}"},
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
        )
        self.logger.debug("Attribution saved", visitor_id=visitor_id, kind=kind, source=source)

    # Reads

    async def get_profile(self, visitor_id: str) -> dict[str, Any] | None:
        response = await asyncio.to_thread(
            self.table.get_item, Key={"PK": f"VISITOR#{visitor_id}", "SK": "PROFILE"}
        )
        item = response.get("Item")
        return from_dynamodb_value(item) if item else None

    async def get_attribution(self, visitor_id: str, kind: AttributionKind) -> dict[str, Any] | None:
        response = await asyncio.to_thread(
            self.table.get_item, Key={"PK": f"VISITOR#{visitor_id}", "SK": f"ATTRIBUTION#{kind}"}
        )
        item = response.get("Item")
        return from_dynamodb_value(item) if item else None
