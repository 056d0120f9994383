"""Visitor, session and first/last-touch attribution tracking.

The tracker owns every identity and attribution record for the visitor:

- Visitor id: created on first access, kept for ``attribution_window_days``.
- Session id: rotated when missing or when no activity has been recorded
  within ``session_timeout_minutes``.
- First touch: written once; later visits leave it alone unless
  ``override_first_touch`` is set.
- Last touch: overwritten on every processed visit.
- Click ids: merged whenever the current URL carries at least one.

All records go through the durable store, mirrored to cookies when
cross-domain tracking is enabled.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError

from tracklayer.attribution.classifier import classify_visit, extract_click_ids
from tracklayer.models.base import BaseModel, Clock, iso_from_ms, now_ms
from tracklayer.models.events import Attribution, ClickIds
from tracklayer.storage.durable import DurableStore
from tracklayer.utils.env import env_bool, env_int
from tracklayer.utils.ids import generate_session_id, generate_visitor_id

logger = structlog.get_logger()


class StorageKeys:
    """Durable store keys owned by the tracker."""

    FIRST_TOUCH = "tracklayer_first_touch"
    LAST_TOUCH = "tracklayer_last_touch"
    CLICK_IDS = "tracklayer_click_ids"
    VISITOR_ID = "tracklayer_visitor_id"
    SESSION_ID = "tracklayer_session_id"
    SESSION_TIMESTAMP = "tracklayer_session_timestamp"


class ActivitySignal(str, Enum):
    """Interactions that keep a session alive."""

    POINTER_DOWN = "pointer_down"
    POINTER_MOVE = "pointer_move"
    KEY_PRESS = "key_press"
    SCROLL = "scroll"
    TOUCH_START = "touch_start"


@dataclass
class AttributionConfig:
    """Configuration for attribution tracking."""

    enable_cross_domain: bool = True
    session_timeout_minutes: int = 30
    attribution_window_days: int = 30
    override_first_touch: bool = False

    @classmethod
    def from_env(cls) -> "AttributionConfig":
        """Build config from TRACKLAYER_* environment variables."""
        return cls(
            enable_cross_domain=env_bool("TRACKLAYER_ENABLE_CROSS_DOMAIN", True),
            session_timeout_minutes=env_int("TRACKLAYER_SESSION_TIMEOUT_MINUTES", 30),
            attribution_window_days=env_int("TRACKLAYER_ATTRIBUTION_WINDOW_DAYS", 30),
            override_first_touch=env_bool("TRACKLAYER_OVERRIDE_FIRST_TOUCH", False),
        )

    @property
    def attribution_ttl_seconds(self) -> int:
        return self.attribution_window_days * 24 * 60 * 60

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_timeout_minutes * 60


@dataclass
class PageContext:
    """The page currently being viewed."""

    url: str
    referrer: str | None = None
    user_agent: str | None = None


class AttributionContext(BaseModel):
    """Identity and attribution bundle stamped onto outgoing events."""

    visitor_id: str
    session_id: str
    attribution_first: Attribution | None = None
    attribution_last: Attribution | None = None
    click_ids: ClickIds | None = None


class AttributionTracker:
    """Tracks visitor identity, sessions and marketing touches.

    Example:
        tracker = AttributionTracker(store, page=PageContext(url=request_url, referrer=referer))
        tracker.initialize()
        context = tracker.get_attribution_context()
    """

    def __init__(
        self,
        store: DurableStore,
        config: AttributionConfig | None = None,
        page: PageContext | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.config = config or AttributionConfig()
        self.page = page
        self.clock = clock or now_ms
        self._initialized = False
        self.logger = logger.bind(service="attribution_tracker")

    def initialize(self) -> None:
        """Process the current visit once. Later calls are no-ops."""
        if self._initialized or self.page is None:
            return

        self.process_current_visit()
        self._initialized = True

    def set_page(self, page: PageContext) -> None:
        """Point the tracker at a new page (client-side navigation)."""
        self.page = page

    # Identity

    def get_visitor_id(self) -> str:
        """Get the visitor id, creating and persisting one if absent."""
        visitor_id = self.store.get_item(StorageKeys.VISITOR_ID)

        if not visitor_id:
            visitor_id = generate_visitor_id()
            self.store.set_item(
                StorageKeys.VISITOR_ID,
                visitor_id,
                self.config.attribution_ttl_seconds,
                self.config.enable_cross_domain,
            )
            self.logger.info("Visitor created", visitor_id=visitor_id)

        return visitor_id

    def get_session_id(self) -> str:
        """Get the session id, rotating it when missing or expired."""
        session_id = self.store.get_item(StorageKeys.SESSION_ID)

        if not session_id or self.is_session_expired():
            session_id = generate_session_id()
            self.store.set_item(
                StorageKeys.SESSION_ID,
                session_id,
                self.config.session_ttl_seconds,
                self.config.enable_cross_domain,
            )
            self._touch_session()
            self.logger.debug("Session started", session_id=session_id)

        return session_id

    def is_session_expired(self) -> bool:
        """Check if the last recorded activity is older than the session timeout."""
        last_activity = self.store.get_item(StorageKeys.SESSION_TIMESTAMP)
        if not last_activity:
            return True

        timeout_ms = self.config.session_timeout_minutes * 60 * 1000
        return self.clock() - int(last_activity) > timeout_ms

    # Activity

    def record_activity(self, signal: ActivitySignal | str = ActivitySignal.POINTER_DOWN) -> None:
        """Refresh the session activity timestamp for an interaction."""
        signal = ActivitySignal(signal)
        self._touch_session()
        self.logger.debug("Activity recorded", signal=signal.value)

    def on_visibility_change(self, hidden: bool) -> None:
        """Refresh activity when the page comes back to the foreground."""
        if not hidden:
            self._touch_session()

    def on_page_unload(self) -> None:
        self._touch_session()

    def _touch_session(self) -> None:
        # The id key carries the same TTL as the timestamp, so a live session
        # extends both. An expired session is left for get_session_id to rotate.
        session_id = self.store.get_item(StorageKeys.SESSION_ID)
        if session_id and not self.is_session_expired():
            self.store.set_item(
                StorageKeys.SESSION_ID,
                session_id,
                self.config.session_ttl_seconds,
                self.config.enable_cross_domain,
            )

        self.store.set_item(
            StorageKeys.SESSION_TIMESTAMP,
            self.clock(),
            self.config.session_ttl_seconds,
            self.config.enable_cross_domain,
        )

    # Attribution

    def get_first_touch_attribution(self) -> Attribution | None:
        return self._load(StorageKeys.FIRST_TOUCH, Attribution)

    def get_last_touch_attribution(self) -> Attribution | None:
        return self._load(StorageKeys.LAST_TOUCH, Attribution)

    def get_click_ids(self) -> ClickIds | None:
        return self._load(StorageKeys.CLICK_IDS, ClickIds)

    def process_current_visit(self, page: PageContext | None = None) -> Attribution | None:
        """Classify the current page visit and persist first/last touch.

        Args:
            page: Page to process. Defaults to the tracker's current page.

        Returns:
            The attribution computed for this visit, or None without a page.
        """
        page = page or self.page
        if page is None:
            self.logger.warning("No page context, skipping visit processing")
            return None

        click_ids = extract_click_ids(page.url)
        if click_ids.has_any():
            existing = self.get_click_ids()
            merged = {**(existing.to_dict() if existing else {}), **click_ids.to_dict()}
            self._save(StorageKeys.CLICK_IDS, merged)

        attribution = classify_visit(page.url, page.referrer, self.clock)
        record = attribution.to_dict()

        if self.get_first_touch_attribution() is None or self.config.override_first_touch:
            self._save(StorageKeys.FIRST_TOUCH, record)

        self._save(StorageKeys.LAST_TOUCH, record)

        self.logger.info(
            "Visit processed",
            source=attribution.source,
            medium=attribution.medium,
            campaign=attribution.campaign,
        )
        return attribution

    def update_last_touch_attribution(self, updates: dict[str, Any]) -> Attribution:
        """Merge fields onto the last-touch record with a fresh timestamp."""
        current = self.get_last_touch_attribution()
        merged = {
            **(current.to_dict() if current else {}),
            **updates,
            "timestamp": iso_from_ms(self.clock()),
        }
        attribution = Attribution.model_validate(merged)
        self._save(StorageKeys.LAST_TOUCH, attribution.to_dict())
        return attribution

    def clear_attribution(self) -> None:
        """Forget first touch, last touch and click ids."""
        self.store.remove_item(StorageKeys.FIRST_TOUCH)
        self.store.remove_item(StorageKeys.LAST_TOUCH)
        self.store.remove_item(StorageKeys.CLICK_IDS)

    def reset_session(self) -> None:
        """Forget the session; the next ``get_session_id`` starts a new one."""
        self.store.remove_item(StorageKeys.SESSION_ID)
        self.store.remove_item(StorageKeys.SESSION_TIMESTAMP)

    def get_attribution_context(self) -> AttributionContext:
        return AttributionContext(
            visitor_id=self.get_visitor_id(),
            session_id=self.get_session_id(),
            attribution_first=self.get_first_touch_attribution(),
            attribution_last=self.get_last_touch_attribution(),
            click_ids=self.get_click_ids(),
        )

    def get_debug_info(self) -> dict[str, Any]:
        """Snapshot of tracker state for troubleshooting."""
        first = self.get_first_touch_attribution()
        last = self.get_last_touch_attribution()
        click_ids = self.get_click_ids()
        return {
            "visitor_id": self.get_visitor_id(),
            "session_expired": self.is_session_expired(),
            "session_id": self.get_session_id(),
            "first_touch": first.to_dict() if first else None,
            "last_touch": last.to_dict() if last else None,
            "click_ids": click_ids.to_dict() if click_ids else None,
            "current_url": self.page.url if self.page else "",
            "referrer": (self.page.referrer or "") if self.page else "",
        }

    def _save(self, key: str, value: Any) -> None:
        self.store.set_item(
            key,
            value,
            self.config.attribution_ttl_seconds,
            self.config.enable_cross_domain,
        )

    def _load(self, key: str, model: type[BaseModel]) -> Any | None:
        data = self.store.get_item(key)
        if not data:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            self.logger.warning("Discarding malformed stored record", key=key, error=str(e))
            return None
