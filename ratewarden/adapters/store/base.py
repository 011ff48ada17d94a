"""Expiring key-value store interfaces.

The rate limiter depends on this abstraction (not a concrete backend) so the
same counting logic runs against a process-local map or a shared Redis
instance.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class RateRecord:
    """Counter state for one store key.

    Attributes:
        hits: Attempts recorded in the current window.
        expires_at: UNIX epoch seconds when the window resets (0 when unset).
    """

    hits: int = 0
    expires_at: int = 0

    @classmethod
    def empty(cls) -> "RateRecord":
        return cls(hits=0, expires_at=0)

    @classmethod
    def from_value(cls, value: Any) -> "RateRecord | None":
        """Parse a raw stored value, returning None when it is malformed."""

        if not isinstance(value, Mapping):
            return None
        hits = value.get("hits")
        expires_at = value.get("expires_at")
        for field in (hits, expires_at):
            # bool is an int subclass; a stored True is not a counter
            if not isinstance(field, int) or isinstance(field, bool) or field < 0:
                return None
        return cls(hits=hits, expires_at=expires_at)

    def is_expired(self, now: int) -> bool:
        return self.expires_at != 0 and self.expires_at < now

    def to_value(self) -> dict[str, int]:
        return {"hits": self.hits, "expires_at": self.expires_at}


class AbstractExpiringStore(ABC):
    """Interface for key-value stores with per-key time-to-live."""

    backend_name: str = "abstract"

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the stored value, or None if absent or expired."""
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store a value that expires after ttl_seconds.

        Returns:
            True when the write was acknowledged.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key.

        Returns:
            True if a value was removed, False if the key was absent.
        """
        raise NotImplementedError

    def ping(self) -> bool:
        """Return True when the backend is reachable."""
        return True


class AbstractAtomicHitStore(AbstractExpiringStore):
    """Store that can record a rate limit hit as a single atomic operation.

    Plain get/set stores leave a read-modify-write race between concurrent
    callers sharing a key (lost updates undercount attempts). Stores
    implementing this interface close that race.
    """

    @abstractmethod
    def increment_hit(self, key: str, *, now: int, decay_seconds: int) -> RateRecord:
        """Atomically record one hit for key.

        A missing, malformed or expired record (expires_at != 0 and
        expires_at < now) restarts from zero. The new record has
        expires_at = now + decay_seconds and is stored with TTL decay_seconds.

        Args:
            key: Store key (already namespaced and hashed by the caller).
            now: Current UNIX time in whole seconds.
            decay_seconds: Window length in seconds.

        Returns:
            The record as written.
        """
        raise NotImplementedError
