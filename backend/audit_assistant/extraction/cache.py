"""
Extraction Cache — in-process TTL cache

Avoids re-calling the extraction service for a (location, profile) pair
already analyzed within the TTL window (default 1 h).

Properties:
  - Purely a performance artifact: a miss only costs latency.
  - Readers never block; concurrent writers for the same key are
    last-writer-wins (both results are equivalent).
  - Expiry is checked lazily on read against a monotonic clock, which is
    injectable so tests can advance time without sleeping.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Generic, Hashable, TypeVar

from audit_assistant.schemas.extraction import CanonicalExtraction, ExtractionProfile

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """Dict-backed cache storing (expires_at, value) per key."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._ttl     = ttl_seconds
        self._clock   = clock
        self._entries: dict[K, tuple[float, V]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: K, value: V) -> None:
        self._entries[key] = (self._clock() + self._ttl, value)

    def expire(self, key: K) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now   = self._clock()
        stale = [k for k, (exp, _) in self._entries.items() if now >= exp]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


def cache_key(location: str, profile: ExtractionProfile) -> str:
    return f"analysis_{profile.value}_{location}"


class ExtractionCache:
    """Typed facade over TTLCache keyed by (location, profile)."""

    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds is None:
            from audit_assistant.core.config import settings
            ttl_seconds = settings.extraction_cache_ttl_seconds
        self._cache: TTLCache[str, CanonicalExtraction] = TTLCache(ttl_seconds, clock)

    def lookup(self, location: str, profile: ExtractionProfile) -> CanonicalExtraction | None:
        hit = self._cache.get(cache_key(location, profile))
        logger.debug(
            "ExtractionCache | %s location=%s profile=%s",
            "hit" if hit is not None else "miss", location, profile.value,
        )
        return hit

    def store(self, location: str, profile: ExtractionProfile, record: CanonicalExtraction) -> None:
        self._cache.set(cache_key(location, profile), record)

    def expire(self, location: str, profile: ExtractionProfile | None = None) -> None:
        """Expire one profile, or every profile cached for the location."""
        profiles = [profile] if profile is not None else list(ExtractionProfile)
        for p in profiles:
            self._cache.expire(cache_key(location, p))

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
