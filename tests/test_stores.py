from datetime import datetime, timedelta, timezone

import pytest

from popgate.stores import (
    CookieMarkerStore,
    MemoryMarkerStore,
    StorageUnavailable,
    format_marker_cookie,
    parse_cookie_header,
)

T0 = datetime(2026, 10, 17, 0, 0, 30, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_parse_cookie_header():
    assert parse_cookie_header("a=1; b=two; c=") == {"a": "1", "b": "two", "c": ""}
    assert parse_cookie_header("") == {}
    assert parse_cookie_header("garbage; =x; a=1") == {"a": "1"}
    assert parse_cookie_header("a=first; a=second") == {"a": "first"}
    assert parse_cookie_header("token=abc=def") == {"token": "abc=def"}


def test_format_marker_cookie():
    assert (
        format_marker_cookie("launchdarkly", "true", 7, T0)
        == "launchdarkly=true; expires=Sat, 24 Oct 2026 00:00:30 GMT; path=/"
    )
    assert format_marker_cookie("k", "v", 0, T0) == "k=v; path=/"
    assert format_marker_cookie("k", "", 0, T0) == "k=; path=/"


def test_memory_store_expiry_boundaries():
    clock = Clock(T0)
    store = MemoryMarkerStore(clock)
    store.set("launchdarkly", "true", 7)
    assert store.expires_at("launchdarkly") == T0 + timedelta(days=7)

    clock.now = T0 + timedelta(days=6, hours=23)
    assert store.get("launchdarkly") == "true"

    clock.now = T0 + timedelta(days=7)
    assert store.get("launchdarkly") is None
    assert store.expires_at("launchdarkly") is None


def test_memory_store_replaces_and_clears():
    clock = Clock(T0)
    store = MemoryMarkerStore(clock)
    store.set("k", "old", 1)
    clock.now = T0 + timedelta(hours=20)
    store.set("k", "new", 1)
    clock.now = T0 + timedelta(days=1, hours=1)
    assert store.get("k") == "new"

    store.set("session", "x", 0)
    clock.now = T0 + timedelta(days=3650)
    assert store.get("session") == "x"
    store.clear()
    assert store.get("session") is None


def test_cookie_store_reads_presence():
    store = CookieMarkerStore("other=1; launchdarkly=true")
    assert store.get("launchdarkly") == "true"
    assert store.get("missing") is None


def test_cookie_store_write_delivers_assignment():
    delivered = []
    store = CookieMarkerStore("", now=lambda: T0, on_set=lambda key, c: delivered.append((key, c)))
    store.set("launchdarkly", "true", 7)

    expected = "launchdarkly=true; expires=Sat, 24 Oct 2026 00:00:30 GMT; path=/"
    assert delivered == [("launchdarkly", expected)]
    assert store.written == [expected]
    assert store.get("launchdarkly") == "true"


def test_cookie_store_disabled_cookies():
    store = CookieMarkerStore(None)
    with pytest.raises(StorageUnavailable):
        store.get("launchdarkly")
    with pytest.raises(StorageUnavailable):
        store.set("launchdarkly", "true", 7)
    assert store.written == []


def test_memory_store_expires_at_hides_lapsed_entry():
    clock = Clock(T0)
    store = MemoryMarkerStore(clock)
    store.set("launchdarkly", "true", 7)

    clock.now = T0 + timedelta(days=7, hours=1)
    assert store.expires_at("launchdarkly") is None
    assert store.get("launchdarkly") is None
