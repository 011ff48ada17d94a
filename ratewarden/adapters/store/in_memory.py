"""In-memory expiring store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, which also makes
  increment_hit atomic within the process.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from ratewarden.adapters.store.base import AbstractAtomicHitStore, RateRecord

logger = logging.getLogger(__name__)


@dataclass
class _StoreItem:
    value: Any
    expires_at: float


class InMemoryExpiringStore(AbstractAtomicHitStore):
    """Thread-safe, in-memory TTL store with LRU eviction.

    Attributes:
        max_entries: Maximum number of stored items (None for unlimited).
    """

    backend_name = "memory"

    def __init__(
        self,
        *,
        max_entries: int | None = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self._max_entries = max_entries
        self._clock = clock
        self._items: OrderedDict[str, _StoreItem] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryExpiringStore(max_entries={self._max_entries}, "
            f"size={len(self._items)}, hits={self._hits}, misses={self._misses}, "
            f"evictions={self._evictions})"
        )

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._get_locked(key)

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        with self._lock:
            self._set_locked(key, value, ttl_seconds)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def increment_hit(self, key: str, *, now: int, decay_seconds: int) -> RateRecord:
        with self._lock:
            record = RateRecord.from_value(self._get_locked(key))
            if record is None or record.is_expired(now):
                record = RateRecord.empty()

            record = RateRecord(hits=record.hits + 1, expires_at=now + decay_seconds)
            self._set_locked(key, record.to_value(), decay_seconds)
            return record

    def clear_all(self) -> None:
        """Remove all stored entries and reset counters."""

        with self._lock:
            self._items.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int | None]:
        """Return lightweight store metrics without exposing values."""

        with self._lock:
            return {
                "max_entries": self._max_entries,
                "entries": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _get_locked(self, key: str) -> Any | None:
        item = self._items.get(key)
        if item is None:
            self._misses += 1
            return None

        if self._clock() >= item.expires_at:
            self._evict_single(key)
            self._misses += 1
            logger.debug(
                "store.miss",
                extra={
                    "store_key": key[-16:],
                    "reason": "expired",
                },
            )
            return None

        self._hits += 1
        self._items.move_to_end(key)  # mark as recently used
        return item.value

    def _set_locked(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._evict_expired_locked()
        self._items[key] = _StoreItem(value=value, expires_at=self._clock() + ttl_seconds)
        self._items.move_to_end(key)
        self._evict_if_over_capacity_locked()

    def _evict_single(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._evictions += 1

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        expired_keys = [k for k, item in self._items.items() if item.expires_at <= now]
        for key in expired_keys:
            self._evict_single(key)

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._items) > self._max_entries:
            # popitem(last=False) removes the least recently used entry
            key, _ = self._items.popitem(last=False)
            self._evictions += 1
            logger.debug(
                "store.evicted",
                extra={
                    "store_key": key[-16:],
                    "reason": "capacity",
                },
            )
