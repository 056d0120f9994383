"""Pydantic models for tracklayer records."""

from tracklayer.models.base import BaseModel, Clock, iso_from_ms, now_ms
from tracklayer.models.events import (
    AlertMeta,
    Attribution,
    ClickIds,
    ConsentState,
    DeviceInfo,
    EnrichmentInfo,
    EventAction,
    EventPayload,
    ExperienceType,
    GeoInfo,
    IdentityInfo,
)
from tracklayer.models.queue import QueuedEvent

__all__ = [
    "AlertMeta",
    "Attribution",
    "BaseModel",
    "ClickIds",
    "Clock",
    "ConsentState",
    "DeviceInfo",
    "EnrichmentInfo",
    "EventAction",
    "EventPayload",
    "ExperienceType",
    "GeoInfo",
    "IdentityInfo",
    "QueuedEvent",
    "iso_from_ms",
    "now_ms",
]
