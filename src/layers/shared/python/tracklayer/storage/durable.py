"""TTL-enveloped key/value store with an optional cookie mirror.

Every write lands in the primary backend as a JSON envelope
``{value, created_at, expires_at?}``. Writes flagged ``cross_domain`` are
also mirrored into a root-path cookie holding the URL-encoded JSON value,
so cooperating subdomains can read it back when their own primary store
has nothing.

Storage faults never reach callers: writes become no-ops and reads return
``None``.
"""

import json
from typing import Any
from urllib.parse import quote, unquote

import structlog

from tracklayer.models.base import BaseModel, Clock, now_ms
from tracklayer.storage.backends import InMemoryBackend, KeyValueBackend
from tracklayer.storage.cookies import CookieJar
from tracklayer.utils.exceptions import StorageError

logger = structlog.get_logger()

KEY_PREFIX = "tracklayer_"


class StoredItem(BaseModel):
    """Envelope persisted for every key."""

    value: Any
    created_at: int
    expires_at: int | None = None


class DurableStore:
    """Dual-backend keyed store.

    Example:
        store = DurableStore(InMemoryBackend(), cookies=CookieJar())
        store.set_item("tracklayer_visitor_id", "visitor_01H...", ttl_seconds=86400, cross_domain=True)
        store.get_item("tracklayer_visitor_id")
    """

    def __init__(
        self,
        backend: KeyValueBackend | None = None,
        cookies: CookieJar | None = None,
        clock: Clock | None = None,
    ):
        self.backend = backend if backend is not None else InMemoryBackend()
        self.clock = clock or now_ms
        self.cookies = cookies if cookies is not None else CookieJar(clock=self.clock)
        self.logger = logger.bind(service="durable_store")

    def set_item(
        self,
        key: str,
        value: Any,
        ttl_seconds: float | None = None,
        cross_domain: bool = False,
    ) -> None:
        """Write a value.

        Args:
            key: Storage key.
            value: JSON-serializable value.
            ttl_seconds: Lifetime; the entry never expires when omitted.
            cross_domain: Also mirror the value into a cookie.
        """
        now = self.clock()
        expires_at = int(now + ttl_seconds * 1000) if ttl_seconds else None

        try:
            item = StoredItem(value=value, created_at=now, expires_at=expires_at)
            self.backend.set(key, item.model_dump_json())
        except Exception as e:
            self._log_fault(StorageError("set", key, str(e)))

        if cross_domain:
            try:
                self.cookies.set(key, quote(json.dumps(value), safe=""), expires_at)
            except Exception as e:
                self._log_fault(StorageError("set_cookie", key, str(e)))

    def get_item(self, key: str) -> Any | None:
        """Read a value from the primary store, falling back to the cookie mirror.

        Expired primary entries are deleted on read.
        """
        local_value = self._get_local(key)
        if local_value is not None:
            return local_value

        try:
            raw = self.cookies.get(key)
            if raw:
                return json.loads(unquote(raw))
        except Exception as e:
            self._log_fault(StorageError("get_cookie", key, str(e)))

        return None

    def remove_item(self, key: str) -> None:
        """Delete a key from both backends."""
        try:
            self.backend.delete(key)
        except Exception as e:
            self._log_fault(StorageError("remove", key, str(e)))

        try:
            self.cookies.delete(key)
        except Exception as e:
            self._log_fault(StorageError("remove_cookie", key, str(e)))

    def keys(self, prefix: str = "") -> list[str]:
        """List primary-store keys starting with ``prefix``."""
        try:
            return [key for key in self.backend.keys() if key.startswith(prefix)]
        except Exception as e:
            self._log_fault(StorageError("keys", prefix, str(e)))
            return []

    def cleanup(self, prefix: str = KEY_PREFIX) -> None:
        """Evict expired entries under ``prefix`` by reading each one."""
        for key in self.keys(prefix):
            self._get_local(key)

    def clear(self) -> None:
        """Wipe the primary backend."""
        try:
            self.backend.clear()
        except Exception as e:
            self._log_fault(StorageError("clear", "*", str(e)))

    def _get_local(self, key: str) -> Any | None:
        try:
            raw = self.backend.get(key)
            if not raw:
                return None

            item = StoredItem.model_validate_json(raw)
            if item.expires_at and self.clock() > item.expires_at:
                self.backend.delete(key)
                return None

            return item.value
        except Exception as e:
            self._log_fault(StorageError("get", key, str(e)))
            return None

    def _log_fault(self, error: StorageError) -> None:
        self.logger.warning(error.message, **error.details)
