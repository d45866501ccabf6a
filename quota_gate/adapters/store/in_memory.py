"""In-memory counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state. The lock is never held
  across an await.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from quota_gate.adapters.store.base import AbstractCounterStore
from quota_gate.core.errors import StoreDataCorruptError


@dataclass
class _Entry:
    value: str
    expires_at: float | None


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store backed by a process-local dict.

    Mirrors the subset of Redis semantics the rate limiter relies on: values
    are stored as strings, INCR on a missing key starts from zero without an
    expiry, and expired keys read as absent.

    Important:
        Counters are not shared between processes. Use the Redis backend when
        the API runs with more than one worker or instance.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source returning seconds; monotonic by default.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}

    def _live_entry(self, key: str, now: float) -> _Entry | None:
        """Return the entry for key, evicting it first if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= now:
            del self._entries[key]
            return None
        return entry

    def _increment(self, key: str, now: float, operation: str) -> _Entry:
        entry = self._live_entry(key, now)
        if entry is None:
            entry = _Entry(value="0", expires_at=None)
            self._entries[key] = entry
        try:
            current = int(entry.value)
        except ValueError as exc:
            raise StoreDataCorruptError(operation) from exc
        entry.value = str(current + 1)
        return entry

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live_entry(key, self._clock())
            return entry.value if entry is not None else None

    async def set(self, key: str, value: int, *, expiry_seconds: int) -> None:
        if expiry_seconds < 1:
            raise ValueError("expiry_seconds must be >= 1")
        with self._lock:
            self._entries[key] = _Entry(
                value=str(value),
                expires_at=self._clock() + expiry_seconds,
            )

    async def incr(self, key: str) -> int:
        with self._lock:
            entry = self._increment(key, self._clock(), "incr")
            return int(entry.value)

    async def ttl(self, key: str) -> int | None:
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None or entry.expires_at is None:
                return None
            return max(0, int(math.ceil(entry.expires_at - now)))

    async def incr_with_expiry(self, key: str, *, expiry_seconds: int) -> int:
        if expiry_seconds < 1:
            raise ValueError("expiry_seconds must be >= 1")
        with self._lock:
            now = self._clock()
            entry = self._increment(key, now, "incr_with_expiry")
            count = int(entry.value)
            if count == 1:
                entry.expires_at = now + expiry_seconds
            return count

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()
