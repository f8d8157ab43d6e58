from __future__ import annotations

from unittest.mock import MagicMock

from rangegame.data.cache import TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def test_set_and_get(self) -> None:
        cache = TTLCache(default_ttl_seconds=60, clock=FakeClock())
        cache.set("k", "v")
        assert cache.get("k") == "v"
        assert len(cache) == 1

    def test_expires_after_ttl(self) -> None:
        clock = FakeClock()
        cache = TTLCache(default_ttl_seconds=60, clock=clock)
        cache.set("k", "v")
        clock.now += 59
        assert cache.get("k") == "v"
        clock.now += 1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self) -> None:
        clock = FakeClock()
        cache = TTLCache(default_ttl_seconds=60, clock=clock)
        cache.set("short", 1, ttl_seconds=5)
        cache.set("long", 2)
        clock.now += 10
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_get_or_fetch_caches(self) -> None:
        cache = TTLCache(clock=FakeClock())
        fetch = MagicMock(return_value={"x": 1})
        assert cache.get_or_fetch("k", fetch) == {"x": 1}
        assert cache.get_or_fetch("k", fetch) == {"x": 1}
        fetch.assert_called_once()

    def test_get_or_fetch_does_not_cache_none(self) -> None:
        cache = TTLCache(clock=FakeClock())
        fetch = MagicMock(return_value=None)
        assert cache.get_or_fetch("k", fetch) is None
        assert cache.get_or_fetch("k", fetch) is None
        assert fetch.call_count == 2

    def test_invalidate_and_clear(self) -> None:
        cache = TTLCache(clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        cache.invalidate("missing")
        assert cache.get("a") is None
        cache.clear()
        assert cache.get("b") is None
