"""Rate limiting wiring for FastAPI routes.

This module builds the process-wide store and limiters and exposes the
dependency that throttles the API itself.

Two limiters share one store:
- the request limiter caps API calls per caller (``APP_RATE_LIMIT_*``);
- the action limiter backs the /v1/limits endpoints (``APP_ACTION_*``).
Each uses its own key prefix so their counters never collide.

Callers are identified per user when the API key carries a user id, and per
client address otherwise.
"""

from __future__ import annotations

import logging
import threading

from fastapi import HTTPException, status

from ratewarden.adapters.identity.request import RequestIdentityProvider
from ratewarden.adapters.store.base import AbstractExpiringStore
from ratewarden.adapters.store.factory import create_store
from ratewarden.core.config import settings
from ratewarden.core.errors import StoreAppError
from ratewarden.core.logging import short_digest
from ratewarden.services.client_ip import resolve_client_ip
from ratewarden.services.rate_limiter import RateLimiter, RateLimitStatus

logger = logging.getLogger(__name__)

REQUEST_LIMIT_ACTION = "api"

_store: AbstractExpiringStore | None = None
_store_config: tuple | None = None
_store_lock = threading.Lock()
_limiters: dict[str, tuple[tuple[int, int, str], RateLimiter]] = {}


def _store_settings_key() -> tuple:
    store_settings = settings.store
    return (
        store_settings.backend,
        store_settings.redis_url,
        store_settings.namespace,
        store_settings.max_entries,
        store_settings.socket_timeout_seconds,
    )


def get_store() -> AbstractExpiringStore:
    """Return the process-wide store instance.

    Rebuilt when the store settings change (primarily in tests). Sync
    dependencies run in the threadpool, so the build is serialized to keep
    every request on one store.
    """

    global _store, _store_config

    config = _store_settings_key()
    with _store_lock:
        if _store is None or _store_config != config:
            _store = create_store()
            _store_config = config
            _limiters.clear()

        return _store


def _get_limiter(name: str, max_attempts: int, decay_seconds: int) -> RateLimiter:
    store = get_store()
    config = (max_attempts, decay_seconds, settings.store.key_prefix)

    with _store_lock:
        cached = _limiters.get(name)
        if cached is not None and cached[0] == config and cached[1].store is store:
            return cached[1]

        limiter = RateLimiter(
            store,
            max_attempts=max_attempts,
            decay_seconds=decay_seconds,
            identity=RequestIdentityProvider(),
            key_prefix=f"{settings.store.key_prefix}{name}_",
        )
        _limiters[name] = (config, limiter)
        return limiter


def get_request_limiter() -> RateLimiter:
    """Limiter applied to every /v1 request."""

    return _get_limiter(
        "request",
        settings.app.rate_limit_requests,
        settings.app.rate_limit_window_seconds,
    )


def get_action_limiter() -> RateLimiter:
    """Limiter backing the per-action endpoints."""

    return _get_limiter(
        "action",
        settings.app.action_max_attempts,
        settings.app.action_decay_seconds,
    )


def _client_ip() -> str:
    identity = RequestIdentityProvider()
    return resolve_client_ip(identity.client_headers(), identity.remote_address())


def rate_limit_headers(limit_status: RateLimitStatus) -> dict[str, str]:
    """Build the standard rate limit response headers for a status snapshot."""

    headers = {
        "X-RateLimit-Limit": str(limit_status.limit),
        "X-RateLimit-Remaining": str(limit_status.remaining),
        "X-RateLimit-Reset": str(limit_status.reset_at),
    }
    if limit_status.limited:
        headers["Retry-After"] = str(limit_status.available_in)
    return headers


def rate_limited_exception(limit_status: RateLimitStatus) -> HTTPException:
    """Build the 429 response for a limited key."""

    headers: dict[str, str] = {}
    if settings.app.rate_limit_include_headers:
        headers = rate_limit_headers(limit_status)

    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers or None,
    )


def enforce_rate_limit() -> None:
    """FastAPI dependency enforcing the global request limit.

    When enabled, records one attempt against the caller's budget. Callers
    that are already over the limit get HTTP 429 without being counted.

    Store failures follow APP_RATE_LIMIT_FAIL_OPEN: when true the request is
    allowed and a warning is logged, otherwise the StoreAppError propagates.

    Raises:
        HTTPException: 429 Too Many Requests when rate limit is exceeded.
        StoreAppError: When the store is unavailable and fail-open is disabled.
    """

    if not settings.app.rate_limit_enabled:
        return

    limiter = get_request_limiter()
    key = limiter.for_user(REQUEST_LIMIT_ACTION)
    key_hash = short_digest(key)

    try:
        limit_status = limiter.status(key)
        if not limit_status.limited:
            hits = limiter.hit(key)
    except StoreAppError as exc:
        if not settings.app.rate_limit_fail_open:
            raise
        logger.warning(
            "rate_limit.fail_open",
            extra={
                "key_hash": key_hash,
                "error_code": exc.code,
                "client_ip": _client_ip(),
            },
        )
        return

    if not limit_status.limited:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": limit_status.limit,
                "remaining": max(0, limit_status.limit - hits),
                "window_s": limiter.decay_seconds,
            },
        )
        return

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": limit_status.limit,
            "remaining": limit_status.remaining,
            "window_s": limiter.decay_seconds,
            "retry_after_s": limit_status.available_in,
            "client_ip": _client_ip(),
        },
    )
    raise rate_limited_exception(limit_status)
