"""In-memory TTL cache used by the identifier resolver.

- Entries expire lazily: an expired entry is dropped the next time it is read
- ``cleanup()`` sweeps every expired entry on demand
- No size-based eviction; the number of entries is bounded by the distinct
  identifiers a process touches
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_TTL: float = 5 * 60.0


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[V]):
    value: V
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class TTLCache(Generic[K, V]):
    """Lock-guarded key -> (value, expiry) store."""

    def __init__(self, default_ttl: float = DEFAULT_TTL, *, clock: Callable[[], float] = time.monotonic) -> None:
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[K, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def set(self, key: K, value: V, ttl: float | None = None) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds (default TTL when omitted)."""

        lifetime = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + lifetime)
        logger.debug("Cache set: %r (ttl=%.1fs)", key, lifetime)

    def get(self, key: K) -> tuple[V | None, bool]:
        """Return ``(value, True)`` for a live entry, ``(None, False)`` otherwise."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug("Cache expired: %r", key)
                return None, False
            return entry.value, True

    def cleanup(self) -> int:
        """Remove every expired entry and return how many were dropped."""

        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Cache cleanup removed %d entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            if self._entries:
                logger.debug("Cache cleared (%d entries)", len(self._entries))
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        _, found = self.get(key)  # type: ignore[arg-type]
        return found
