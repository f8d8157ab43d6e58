from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class TTLCache:
    """Keyed cache with per-entry TTL, owned by whichever service creates it.

    Uses a monotonic clock; pass `clock` to control time in tests.
    """

    def __init__(self, default_ttl_seconds: float = 1800.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the cached value if still valid, else None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def get_or_fetch(
        self, key: str, fetch: Callable[[], Any], ttl_seconds: float | None = None,
    ) -> Any:
        """Return the cached value, or call fetch and store its result.

        A fetch returning None is not cached.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug("Cache hit: %s", key)
            return cached
        value = fetch()
        if value is not None:
            self.set(key, value, ttl_seconds)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
