"""
Process-scoped TTL cache.

Purpose
-------
Small in-memory cache with per-entry expiry and explicit invalidation. It is
instantiated and injected (e.g. into RulesService) rather than living as a
module global, so tests can build a private one.

Design Notes
------------
- Clock is injectable (`clock=time.monotonic` by default) for tests
- Expired entries are evicted lazily on access
- Hit/miss counters mirror the ConfigManager metrics shape
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from src.core.logging.logger import get_logger

logger = get_logger(__name__)

V = TypeVar("V")

_MISSING = object()


@dataclass(slots=True)
class TTLCacheMetrics:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    invalidations: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total * 100.0) if total else 0.0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "invalidations": self.invalidations,
            "expirations": self.expirations,
            "hit_rate": round(self.hit_rate, 2),
        }


class TTLCache(Generic[V]):
    """
    In-memory key/value cache with a default time-to-live.

    Example
    -------
    >>> cache: TTLCache[BattleRules] = TTLCache(default_ttl_seconds=60)
    >>> cache.set("rules", rules)
    >>> cache.get("rules")
    """

    def __init__(
        self,
        default_ttl_seconds: float,
        *,
        name: str = "ttl_cache",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")
        self._default_ttl = float(default_ttl_seconds)
        self._name = name
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, V]] = {}
        self.metrics = TTLCacheMetrics()

    def get(self, key: Hashable, default: Optional[V] = None) -> Optional[V]:
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            self.metrics.misses += 1
            return default

        expires_at, value = entry  # type: ignore[misc]
        if self._clock() >= expires_at:
            del self._entries[key]
            self.metrics.expirations += 1
            self.metrics.misses += 1
            logger.debug("Cache entry expired", extra={"cache": self._name, "key": str(key)})
            return default

        self.metrics.hits += 1
        return value

    def set(self, key: Hashable, value: V, ttl_seconds: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else float(ttl_seconds)
        self._entries[key] = (self._clock() + ttl, value)
        self.metrics.sets += 1

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or every key when `key` is None."""
        if key is None:
            count = len(self._entries)
            self._entries.clear()
        else:
            count = 1 if self._entries.pop(key, _MISSING) is not _MISSING else 0
        self.metrics.invalidations += count
        logger.debug(
            "Cache invalidated",
            extra={"cache": self._name, "key": None if key is None else str(key), "count": count},
        )

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry[0]

    def __len__(self) -> int:
        return len(self._entries)
