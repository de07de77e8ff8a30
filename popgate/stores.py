"""Marker stores for popgate.

A marker store is durable per-browser keyed storage with expiry. The display
gate only ever reads one key and writes it at most once per page load.

Key classes:
- MemoryMarkerStore: Clock-aware in-memory store that enforces TTLs itself.
- CookieMarkerStore: View over a browser cookie string; writes produce
  cookie assignments for the browser to apply.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

Clock = Callable[[], datetime]


class StorageUnavailable(Exception):
    """Raised when the browser does not accept cookies."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_cookie_header(header: str) -> dict[str, str]:
    """Parse a `document.cookie` / Cookie header string into a dict.

    The first occurrence of a name wins, matching how browsers order
    cookies with the most specific path first.

    Args:
        header: Cookie string such as "a=1; b=2".

    Returns:
        Mapping of cookie names to raw values.
    """
    cookies: dict[str, str] = {}
    for part in header.split(";"):
        name, sep, value = part.strip().partition("=")
        if not sep or not name:
            continue
        cookies.setdefault(name, value)
    return cookies


def format_marker_cookie(
    key: str, value: str, ttl_days: float, now: datetime | None = None
) -> str:
    """Format a cookie assignment for a marker.

    Args:
        key: Cookie name.
        value: Cookie value.
        ttl_days: Days until expiry. Zero gives a session cookie.
        now: Write instant (defaults to the current UTC time).

    Returns:
        String such as "k=true; expires=Sat, 24 Oct 2026 00:00:30 GMT; path=/".
    """
    expires = ""
    if ttl_days:
        instant = (now or _utcnow()) + timedelta(days=ttl_days)
        expires = f"; expires={format_datetime(instant.astimezone(timezone.utc), usegmt=True)}"
    return f"{key}={value or ''}{expires}; path=/"


class MemoryMarkerStore:
    """In-memory marker store with TTL semantics.

    Entries read as absent at and after their expiry instant. A zero TTL
    never expires.

    Attributes:
        clock: Callable returning the current aware datetime.
    """

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or _utcnow
        self._entries: dict[str, tuple[str, datetime | None]] = {}

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str, ttl_days: float) -> None:
        expires_at = self.clock() + timedelta(days=ttl_days) if ttl_days else None
        self._entries[key] = (value, expires_at)

    def expires_at(self, key: str) -> datetime | None:
        """Return the stored expiry for key, or None for absent, lapsed or session entries."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and self.clock() >= expires_at:
            return None
        return expires_at

    def clear(self) -> None:
        self._entries.clear()


class CookieMarkerStore:
    """Marker store backed by a browser's cookie string.

    The browser drops expired cookies before reporting them, so any cookie
    present in the string counts as a live marker. Writes update the local
    view and hand the cookie assignment to on_set for delivery to the browser.

    Attributes:
        cookie_header: Cookie string from the page, or None when cookies are disabled.
        written: Cookie assignments produced so far, in order.
    """

    def __init__(
        self,
        cookie_header: str | None,
        now: Clock | None = None,
        on_set: Callable[[str, str], None] | None = None,
    ):
        self.cookie_header = cookie_header
        self._now = now or _utcnow
        self._on_set = on_set
        self._cookies = parse_cookie_header(cookie_header) if cookie_header is not None else None
        self.written: list[str] = []

    def get(self, key: str) -> str | None:
        if self._cookies is None:
            raise StorageUnavailable("cookies are disabled")
        return self._cookies.get(key)

    def set(self, key: str, value: str, ttl_days: float) -> None:
        if self._cookies is None:
            raise StorageUnavailable("cookies are disabled")
        assignment = format_marker_cookie(key, value, ttl_days, self._now())
        self._cookies[key] = value
        self.written.append(assignment)
        if self._on_set is not None:
            self._on_set(key, assignment)
