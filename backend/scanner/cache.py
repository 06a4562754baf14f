"""
scanner/cache.py — In-process, time-based result caching.

ResultCache is a single-slot memo for one expensive pipeline; KeyedCache holds
one slot per key (constituent lists per index). Both take an injectable clock
so TTL behaviour can be tested without sleeping.

Known limitation: reads and writes are not coordinated. Two concurrent
recomputations both run and the last writer wins, which is acceptable for
long TTLs and rare writes.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    data: T
    fetched_at: float            # clock() seconds at store time

    def age(self, now: float) -> float:
        return now - self.fetched_at


class ResultCache(Generic[T]):
    """
    Serve the cached value while `now - fetched_at < ttl`, else recompute.

    A successful recomputation replaces the slot wholesale. A failed one leaves
    the previous entry untouched and re-raises, unless serve_stale is set and
    an (expired) entry exists, in which case that entry is returned.
    """

    def __init__(self, ttl_seconds: float, clock: Clock = time.time, name: str = "result"):
        self.ttl = ttl_seconds
        self.clock = clock
        self.name = name
        self._entry: CacheEntry[T] | None = None

    def peek(self) -> CacheEntry[T] | None:
        return self._entry

    def is_fresh(self) -> bool:
        return self._entry is not None and self._entry.age(self.clock()) < self.ttl

    def put(self, data: T) -> CacheEntry[T]:
        self._entry = CacheEntry(data=data, fetched_at=self.clock())
        return self._entry

    def clear(self) -> None:
        self._entry = None

    def get_or_compute(self, compute: Callable[[], T], serve_stale: bool = False) -> T:
        entry = self._entry
        if entry is not None and entry.age(self.clock()) < self.ttl:
            logger.debug(f"[cache] {self.name}: hit ({entry.age(self.clock()):.0f}s old)")
            return entry.data

        try:
            data = compute()
        except Exception as exc:
            if serve_stale and entry is not None:
                logger.warning(
                    f"[cache] {self.name}: refresh failed ({exc}), "
                    f"serving stale result from {entry.age(self.clock()):.0f}s ago"
                )
                return entry.data
            raise

        self.put(data)
        return data


class KeyedCache(Generic[T]):
    """One ResultCache-style slot per key, sharing a TTL and clock."""

    def __init__(self, ttl_seconds: float, clock: Clock = time.time, name: str = "keyed"):
        self.ttl = ttl_seconds
        self.clock = clock
        self.name = name
        self._entries: dict[str, CacheEntry[T]] = {}

    def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None or entry.age(self.clock()) >= self.ttl:
            return None
        return entry.data

    def put(self, key: str, data: T) -> None:
        self._entries[key] = CacheEntry(data=data, fetched_at=self.clock())

    def entry(self, key: str) -> CacheEntry[T] | None:
        return self._entries.get(key)

    def clear(self) -> None:
        self._entries.clear()
