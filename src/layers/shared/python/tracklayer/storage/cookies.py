"""Cookie jar used as the cross-subdomain mirror.

The jar plays the part of ``document.cookie``: values written here are
visible to every cooperating subdomain that sends the same cookies back.
It can be seeded from an incoming ``Cookie`` header and renders the
``Set-Cookie`` headers a response needs to carry the writes to the client.
"""

from datetime import datetime, timezone
from email.utils import format_datetime
from http.cookies import CookieError, SimpleCookie

import structlog

from tracklayer.models.base import Clock, now_ms

logger = structlog.get_logger()


class CookieJar:
    """In-process cookie store with expiry, root path and SameSite=Lax."""

    def __init__(self, clock: Clock | None = None, domain: str | None = None):
        """Initialize the jar.

        Args:
            clock: Epoch-ms clock used to evaluate expiry.
            domain: Shared parent domain (e.g. ``.example.com``) so sibling
                subdomains see the cookie. Omitted means host-only.
        """
        self.clock = clock or now_ms
        self.domain = domain
        self._values: dict[str, tuple[str, int | None]] = {}
        self._pending: SimpleCookie = SimpleCookie()

    def load(self, header: str) -> None:
        """Seed the jar from a request ``Cookie`` header."""
        parsed: SimpleCookie = SimpleCookie()
        try:
            parsed.load(header)
        except CookieError as e:
            logger.warning("Ignoring malformed cookie header", error=str(e))
            return
        for name, morsel in parsed.items():
            self._values[name] = (morsel.value, None)

    def set(self, name: str, value: str, expires_at: int | None = None) -> None:
        """Write a cookie.

        Args:
            name: Cookie name.
            value: Already-encoded cookie value.
            expires_at: Expiry in epoch ms; session cookie when omitted.
        """
        self._values[name] = (value, expires_at)
        self._queue_header(name, value, expires_at)

    def get(self, name: str) -> str | None:
        """Read a cookie value, hiding expired cookies."""
        entry = self._values.get(name)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() > expires_at:
            del self._values[name]
            return None
        return value

    def delete(self, name: str) -> None:
        """Expire a cookie immediately."""
        self._values.pop(name, None)
        self._queue_header(name, "", 0)

    def header(self) -> str:
        """Render the live cookies as a request ``Cookie`` header."""
        now = self.clock()
        return "; ".join(
            f"{name}={value}"
            for name, (value, expires_at) in self._values.items()
            if expires_at is None or now <= expires_at
        )

    def set_cookie_headers(self) -> list[str]:
        """Return and clear the ``Set-Cookie`` headers for pending writes."""
        headers = [morsel.OutputString() for morsel in self._pending.values()]
        self._pending = SimpleCookie()
        return headers

    def _queue_header(self, name: str, value: str, expires_at: int | None) -> None:
        self._pending[name] = value
        morsel = self._pending[name]
        morsel["path"] = "/"
        morsel["samesite"] = "Lax"
        if self.domain:
            morsel["domain"] = self.domain
        if expires_at is not None:
            expires = datetime.fromtimestamp(expires_at / 1000, tz=timezone.utc)
            morsel["expires"] = format_datetime(expires, usegmt=True)
