"""
DedupCache - Short-TTL memo of recent successful upstream responses.

Features:
- Keyed by the exact request URL, query string included
- Entries are only written for genuine, non-empty successes
- Size-bounded: expired entries are swept once the table grows past its
  bound, then the oldest entries are evicted if it is still too large

All access happens on the gateway's event loop, so lookups are synchronous.
"""

import copy
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger


@dataclass
class DedupEntry:
    """A single cached upstream response."""

    url: str
    payload: Any
    stored_at: float

    def age(self, now: float) -> float:
        return now - self.stored_at


def is_cacheable(payload: Any) -> bool:
    """
    Whether a payload counts as a genuine answer worth replaying.

    An article list must be non-empty; any other object must have keys.
    Non-object JSON (lists, numbers) is cacheable when truthy.
    """
    if isinstance(payload, dict):
        if "articles" in payload:
            articles = payload["articles"]
            return isinstance(articles, list) and len(articles) > 0
        return len(payload) > 0
    return bool(payload)


class DedupCache:
    """
    Usage:
        cache = DedupCache(ttl=60.0)

        payload = cache.get(url)
        if payload is None:
            payload = await fetch(url)
            cache.store(url, payload)
    """

    def __init__(
        self,
        ttl: float,
        max_entries: int = 200,
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ):
        self._entries: dict[str, DedupEntry] = {}
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._debug = debug
        self._stats = CacheStats()

    def get(self, url: str) -> Any | None:
        """Return the cached payload for url if younger than the TTL."""
        entry = self._entries.get(url)
        if entry is None:
            self._stats.misses += 1
            return None

        if entry.age(self._clock()) >= self._ttl:
            del self._entries[url]
            self._stats.misses += 1
            self._log(f"EXPIRED: {url[:80]}")
            return None

        self._stats.hits += 1
        self._log(f"HIT: {url[:80]}")
        return copy.deepcopy(entry.payload)

    def store(self, url: str, payload: Any) -> bool:
        """
        Cache payload for url. Returns False when the payload is not cacheable.
        """
        if not is_cacheable(payload):
            self._log(f"SKIP (empty payload): {url[:80]}")
            return False

        self._entries[url] = DedupEntry(
            url=url, payload=copy.deepcopy(payload), stored_at=self._clock()
        )
        if len(self._entries) > self._max_entries:
            self._sweep()
        return True

    def delete(self, url: str) -> bool:
        return self._entries.pop(url, None) is not None

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        self._log(f"CLEAR: {count} entries removed")

    def _sweep(self) -> None:
        """Drop expired entries, then the oldest ones while over the bound."""
        now = self._clock()
        expired = [k for k, v in self._entries.items() if v.age(now) >= self._ttl]
        for key in expired:
            del self._entries[key]

        while len(self._entries) > self._max_entries:
            oldest_key = min(
                self._entries.keys(),
                key=lambda k: self._entries[k].stored_at,
            )
            del self._entries[oldest_key]
            self._stats.evictions += 1

        if expired:
            self._log(f"SWEEP: {len(expired)} expired entries removed")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def get_stats(self) -> "CacheStats":
        self._stats.size = len(self._entries)
        self._stats.max_size = self._max_entries
        return self._stats

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[DedupCache] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
