"""Event payload models.

An event moves through the bus as an ``EventPayload``. Adapters receive the
model itself; persistence and the offline queue store ``to_dict()`` output.
"""

from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field

from tracklayer.models.base import BaseModel


class ExperienceType(str, Enum):
    """Kinds of marketing experience an event can happen in."""

    WEBINAR_LIVE = "webinar_live"
    WEBINAR_ON_DEMAND = "webinar_on_demand"
    DEMO = "demo"
    QUIZ = "quiz"
    RESOURCE = "resource"
    INDEX = "index"


class EventAction(str, Enum):
    """Known event actions.

    The bus accepts any non-empty action string; these are the ones the
    convenience wrappers and bundled adapters know about.
    """

    PAGE_VIEWED = "page_viewed"
    FORM_STARTED = "form_started"
    FORM_SUBMITTED = "form_submitted"
    FORM_ABANDONED = "form_abandoned"
    FIELD_FOCUSED = "field_focused"
    FIELD_COMPLETED = "field_completed"
    BUTTON_CLICKED = "button_clicked"
    LINK_CLICKED = "link_clicked"
    VIDEO_STARTED = "video_started"
    VIDEO_PROGRESS = "video_progress"
    VIDEO_COMPLETED = "video_completed"
    DOWNLOAD_STARTED = "download_started"
    DOWNLOAD_COMPLETED = "download_completed"
    QUIZ_STARTED = "quiz_started"
    QUIZ_QUESTION_ANSWERED = "quiz_question_answered"
    QUIZ_COMPLETED = "quiz_completed"
    DEMO_REQUESTED = "demo_requested"
    WEBINAR_REGISTERED = "webinar_registered"
    IDENTITY_RESOLVED = "identity_resolved"
    ENRICHMENT_REQUESTED = "enrichment_requested"
    ENRICHMENT_APPLIED = "enrichment_applied"
    PROFILE_UPDATED = "profile_updated"
    RULE_MATCHED = "rule_matched"
    SLACK_ALERT_SENT = "slack_alert_sent"
    CONSENT_UPDATED = "consent_updated"
    INDEX_VIEWED = "index_viewed"
    SEARCH_PERFORMED = "search_performed"
    FILTER_APPLIED = "filter_applied"
    CARD_CLICKED = "card_clicked"


class ConsentState(BaseModel):
    """Visitor consent flags. Defaults to opted out of everything."""

    analytics: bool = False
    ads: bool = False
    marketing: bool = False


class Attribution(BaseModel):
    """One marketing touch (first or last)."""

    source: str | None = None
    medium: str | None = None
    campaign: str | None = None
    term: str | None = None
    content: str | None = None
    referrer: str | None = None
    timestamp: str


class ClickIds(BaseModel):
    """Ad-platform click identifiers. Unknown platforms are kept as extras."""

    model_config = ConfigDict(extra="allow")

    gclid: str | None = None
    fbclid: str | None = None
    ttclid: str | None = None
    msclkid: str | None = None

    def has_any(self) -> bool:
        """Check if at least one click id is non-empty."""
        return any(self.to_dict().values())


class DeviceInfo(BaseModel):
    ua_hash: str
    os: str
    browser: str


class GeoInfo(BaseModel):
    country: str
    region: str | None = None


class IdentityInfo(BaseModel):
    """Company identity resolved for an anonymous visitor."""

    company_domain: str | None = None
    company_name: str | None = None
    employee_count: int | None = None
    revenue_range: str | None = None
    industry: str | None = None
    confidence: float
    provider: str


class EnrichmentInfo(BaseModel):
    """Person-level enrichment applied to a profile."""

    title: str | None = None
    seniority: str | None = None
    department: str | None = None
    linkedin_url: str | None = None
    company_size_bucket: str | None = None
    tech_tags: list[str] | None = None
    provider: str


class AlertMeta(BaseModel):
    rule_id: str | None = None
    channel: str | None = None
    throttled: bool | None = None


class EventPayload(BaseModel):
    """A fully enriched event, ready for adapters.

    Extra keys supplied by the caller are preserved.
    """

    model_config = ConfigDict(extra="allow")

    event_id: str
    dedup_id: str
    occurred_at: str
    action: str

    experience_id: str | None = None
    experience_type: ExperienceType | None = None
    step: str | None = None
    label: str | None = None
    value: float | None = None
    variant: str | None = None

    visitor_id: str
    session_id: str
    profile_id: str | None = None

    attribution_first: Attribution | None = None
    attribution_last: Attribution | None = None
    click_ids: ClickIds | None = None

    device: DeviceInfo | None = None
    geo: GeoInfo | None = None

    consent: ConsentState = Field(default_factory=ConsentState)
    region: str

    identity: IdentityInfo | None = None
    enrichment: EnrichmentInfo | None = None
    alert_meta: AlertMeta | None = None

    payload: dict[str, Any] | None = None
