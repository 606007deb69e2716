"""
Short-TTL read-through cache for per-user aggregate statistics.

Two independent slots per user ("summary" and "detailed"). Entries expire
passively: expiry is checked on read, nothing sweeps in the background.

A per-user generation counter guards against a computation that started
before an invalidation writing its (now stale) result after it.
"""
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar
from uuid import UUID

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUMMARY = "summary"
DETAILED = "detailed"
SLOTS = (SUMMARY, DETAILED)


@dataclass
class _Entry:
    value: Any
    expires_at: float


class StatsCache:
    """In-process cache keyed by (user id, slot)."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[tuple[UUID, str], _Entry] = {}
        self._generations: dict[UUID, int] = {}

    def get(self, user_id: UUID, slot: str, compute: Callable[[], T]) -> T:
        """Return the cached value for *slot*, computing and storing it on a miss."""
        if slot not in SLOTS:
            raise ValueError(f"Unknown stats cache slot: {slot}")

        key = (user_id, slot)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at > self._clock():
                logger.debug("Stats cache hit user=%s slot=%s", user_id, slot)
                return entry.value
            generation = self._generations.get(user_id, 0)

        logger.debug("Stats cache miss user=%s slot=%s", user_id, slot)
        value = compute()

        with self._lock:
            # Skip the write if the user was invalidated while computing
            if self._generations.get(user_id, 0) == generation:
                self._entries[key] = _Entry(value=value, expires_at=self._clock() + self.ttl_seconds)
        return value

    def invalidate(self, user_id: UUID) -> None:
        """Drop both slots for *user_id*."""
        with self._lock:
            for slot in SLOTS:
                self._entries.pop((user_id, slot), None)
            self._generations[user_id] = self._generations.get(user_id, 0) + 1
        logger.debug("Stats cache invalidated user=%s", user_id)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generations.clear()
