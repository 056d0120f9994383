"""Attribution classification and visitor/session tracking."""

from tracklayer.attribution.classifier import (
    CLICK_ID_PARAMS,
    UTM_FIELDS,
    UTMParams,
    classify_visit,
    create_attribution,
    extract_click_ids,
    is_external_referrer,
    medium_from_referrer,
    parse_utm_params,
    source_from_referrer,
)
from tracklayer.attribution.tracker import (
    ActivitySignal,
    AttributionConfig,
    AttributionContext,
    AttributionTracker,
    PageContext,
    StorageKeys,
)

__all__ = [
    "ActivitySignal",
    "AttributionConfig",
    "AttributionContext",
    "AttributionTracker",
    "CLICK_ID_PARAMS",
    "PageContext",
    "StorageKeys",
    "UTMParams",
    "UTM_FIELDS",
    "classify_visit",
    "create_attribution",
    "extract_click_ids",
    "is_external_referrer",
    "medium_from_referrer",
    "parse_utm_params",
    "source_from_referrer",
]
