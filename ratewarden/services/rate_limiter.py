"""Fixed-window rate limiter over an expiring key-value store.

The limiter keeps no state of its own: every call re-reads the store, so any
number of processes sharing a store enforce the same limits.

Concurrency:
    With a store implementing AbstractAtomicHitStore, hit() is a single
    atomic store operation. With a plain get/set/delete store, two callers
    hitting the same key at once can both read the same count and write back
    the same increment, undercounting attempts. attempt() checks and then
    hits in two steps, so it is never atomic across callers.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from ratewarden.adapters.identity.base import AbstractIdentityProvider
from ratewarden.adapters.store.base import (
    AbstractAtomicHitStore,
    AbstractExpiringStore,
    RateRecord,
)
from ratewarden.core.errors import ValidationAppError
from ratewarden.core.logging import short_digest
from ratewarden.services.client_ip import resolve_client_ip

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RateLimitStatus:
    """Snapshot of a key's quota.

    Attributes:
        key: Logical key the snapshot was taken for.
        limit: Max attempts per window.
        hits: Attempts recorded in the current window.
        remaining: Attempts left in the current window (never negative).
        available_in: Seconds until the key is usable again (0 when not limited).
        reset_at: UNIX epoch seconds when the window resets (0 without a record).
    """

    key: str
    limit: int
    hits: int
    remaining: int
    available_in: int
    reset_at: int

    @property
    def limited(self) -> bool:
        return self.hits >= self.limit


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


def _validate_positive(name: str, value: Any) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValueError(f"{name} must be an integer >= 1")


def user_key(user_id: int, action: str) -> str:
    """Logical key for a signed-in user's attempts at action."""
    return f"user_{user_id}_{action}"


def ip_key(ip: str, action: str) -> str:
    """Logical key for a client address's attempts at action.

    The address is hashed so raw addresses never reach the store.
    """
    return f"ip_{_digest(ip)[:32]}_{action}"


class RateLimiter:
    """Count attempts per logical key within a decaying time window.

    Args:
        store: Expiring key-value store holding the counters.
        max_attempts: Attempts allowed per window.
        decay_seconds: Window length in seconds.
        identity: Provider used by for_user()/for_ip().
        key_prefix: Namespace placed in front of every hashed key. Limiters
            with different limits that share a store need distinct prefixes.
        clock: Time source returning UNIX time in seconds.

    Raises:
        ValueError: If max_attempts or decay_seconds is not a positive integer.
    """

    def __init__(
        self,
        store: AbstractExpiringStore,
        *,
        max_attempts: int = 60,
        decay_seconds: int = 60,
        identity: AbstractIdentityProvider | None = None,
        key_prefix: str = "ratewarden_",
        clock: Callable[[], float] = time.time,
    ) -> None:
        _validate_positive("max_attempts", max_attempts)
        _validate_positive("decay_seconds", decay_seconds)

        self._store = store
        self._max_attempts = max_attempts
        self._decay_seconds = decay_seconds
        self._identity = identity
        self._key_prefix = key_prefix
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def decay_seconds(self) -> int:
        return self._decay_seconds

    @property
    def store(self) -> AbstractExpiringStore:
        return self._store

    def hit(self, key: str) -> int:
        """Record one attempt for key.

        Unconditional: callers that must not exceed the limit check
        too_many_attempts() first (or use attempt()).

        Returns:
            The hit count after this attempt.
        """

        store_key = self._store_key(key)
        now = self._now()

        if isinstance(self._store, AbstractAtomicHitStore):
            record = self._store.increment_hit(
                store_key, now=now, decay_seconds=self._decay_seconds
            )
        else:
            current = self._read(key, now)
            record = RateRecord(hits=current.hits + 1, expires_at=now + self._decay_seconds)
            self._store.set(store_key, record.to_value(), self._decay_seconds)

        logger.debug(
            "rate_limit.hit",
            extra={
                "key_hash": short_digest(key),
                "hits": record.hits,
                "limit": self._max_attempts,
            },
        )
        return record.hits

    def too_many_attempts(self, key: str) -> bool:
        return self._read(key, self._now()).hits >= self._max_attempts

    def remaining(self, key: str) -> int:
        record = self._read(key, self._now())
        return max(0, self._max_attempts - record.hits)

    def available_in(self, key: str) -> int:
        """Seconds until key can be used again (0 when not limited)."""

        now = self._now()
        record = self._read(key, now)
        return self._available_in(record, now)

    def status(self, key: str) -> RateLimitStatus:
        """Return every quota figure for key from a single store read."""

        now = self._now()
        record = self._read(key, now)
        return RateLimitStatus(
            key=key,
            limit=self._max_attempts,
            hits=record.hits,
            remaining=max(0, self._max_attempts - record.hits),
            available_in=self._available_in(record, now),
            reset_at=record.expires_at,
        )

    def clear(self, key: str) -> bool:
        """Delete the counter for key, returning the store's acknowledgement."""

        store_key = self._store_key(key)
        cleared = self._store.delete(store_key)
        logger.info(
            "rate_limit.cleared",
            extra={"key_hash": short_digest(key), "cleared": cleared},
        )
        return cleared

    def attempt(
        self,
        key: str,
        action: Callable[[], T],
        on_limited: Callable[[int], Any] | None = None,
    ) -> T | Any | None:
        """Run action if key is under its limit, recording the attempt.

        Args:
            key: Logical rate limit key.
            action: Called (with no arguments) when the key is not limited.
            on_limited: Called with the wait in seconds when the key is limited.

        Returns:
            action()'s result, on_limited()'s result, or None when limited
            without a callback.
        """

        if self.too_many_attempts(key):
            if on_limited is not None:
                return on_limited(self.available_in(key))
            return None

        self.hit(key)
        return action()

    def for_user(self, action: str) -> str:
        """Build a per-user key, falling back to the client address for guests."""

        user_id = self._require_identity().current_user_id()
        if user_id > 0:
            return user_key(user_id, action)
        return self.for_ip(action)

    def for_ip(self, action: str) -> str:
        """Build a per-client-address key. The address itself is hashed."""

        identity = self._require_identity()
        ip = resolve_client_ip(identity.client_headers(), identity.remote_address())
        return ip_key(ip, action)

    def _require_identity(self) -> AbstractIdentityProvider:
        if self._identity is None:
            raise ValidationAppError(
                code="identity_provider_missing",
                message="This rate limiter was created without an identity provider",
                details={"hint": "Pass identity= when constructing RateLimiter"},
            )
        return self._identity

    def _available_in(self, record: RateRecord, now: int) -> int:
        if record.hits < self._max_attempts:
            return 0
        return max(0, record.expires_at - now)

    def _now(self) -> int:
        return int(self._clock())

    def _store_key(self, key: str) -> str:
        return f"{self._key_prefix}rate_{_digest(key)}"

    def _read(self, key: str, now: int) -> RateRecord:
        """Load the record for key, applying lazy expiry.

        Missing and malformed values read as an empty record. A record whose
        window has passed is deleted and read as empty, whether or not the
        store has evicted it yet.
        """

        store_key = self._store_key(key)
        record = RateRecord.from_value(self._store.get(store_key))
        if record is None:
            return RateRecord.empty()

        if record.is_expired(now):
            self._store.delete(store_key)
            logger.debug(
                "rate_limit.window_expired",
                extra={"key_hash": short_digest(key)},
            )
            return RateRecord.empty()

        return record
