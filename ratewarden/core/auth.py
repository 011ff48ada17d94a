"""API Key authentication logic.

Keys are validated against a comma-separated list from environment variables.
An entry may carry the id of the user that owns it (``key:user_id``); that id
becomes the caller identity used for per-user rate limit keys. Keys without
an id authenticate an anonymous caller, whose limits are tracked per client
address instead.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from ratewarden.core.config import settings
from ratewarden.core.errors import AuthenticationAppError, ValidationAppError
from ratewarden.core.logging import short_digest
from ratewarden.services.client_ip import resolve_client_ip

logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> str:
    client = request.client
    return resolve_client_ip(request.headers, client.host if client else None)


def parse_api_keys(keys_string: str | None) -> dict[str, int]:
    """Parse comma-separated API keys into a key -> user id mapping.

    Args:
        keys_string: Comma-separated string of ``key`` or ``key:user_id`` entries.

    Returns:
        Mapping of trimmed, non-empty API keys to user ids (0 = anonymous).

    Raises:
        ValidationAppError: If a user id is not a non-negative integer.

    Examples:
        >>> parse_api_keys("key1,key2:7")
        {'key1': 0, 'key2': 7}
        >>> parse_api_keys(None)
        {}
    """
    if not keys_string:
        return {}

    keys: dict[str, int] = {}
    for entry in keys_string.split(","):
        entry = entry.strip()
        if not entry:
            continue

        key, sep, raw_user_id = entry.partition(":")
        key = key.strip()
        if not key:
            continue

        user_id = 0
        if sep:
            raw_user_id = raw_user_id.strip()
            if not raw_user_id.isdigit():
                raise ValidationAppError(
                    code="invalid_api_key_config",
                    message="API key user ids must be non-negative integers",
                    details={"hint": "Use APP_API_KEYS=key1:7,key2"},
                )
            user_id = int(raw_user_id)

        keys[key] = user_id
    return keys


def validate_api_key(provided_key: str) -> int:
    """Validate that provided API key matches configured keys.

    Pure validation logic without FastAPI dependencies for easy testing.

    Args:
        provided_key: API key to validate.

    Returns:
        The user id bound to the key (0 for anonymous keys or when
        authentication is disabled).

    Raises:
        AuthenticationAppError: If key is invalid or authentication is required but no keys configured.
    """
    if not settings.app.api_key_required:
        # Authentication disabled - allow all requests
        return 0

    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={
                "reason": "api_keys_not_configured",
                "auth_required": settings.app.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "api_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": short_digest(provided_key),
                "auth_required": settings.app.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )

    return valid_keys[provided_key]


async def verify_api_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency for API key authentication.

    Validates the X-API-Key header against configured API keys and stores the
    owning user id on ``request.state.user_id``.
    Can be disabled by setting APP_API_KEY_REQUIRED=false in configuration.

    Usage:
        @router.get("/protected", dependencies=[Depends(verify_api_key)])
        async def protected_endpoint():
            return {"message": "Authenticated!"}

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    request.state.user_id = 0

    if not settings.app.api_key_required:
        logger.debug(
            "auth.skipped",
            extra={"reason": "auth_required_false"},
        )
        return

    if not x_api_key:
        logger.warning(
            "auth.missing_key",
            extra={
                "auth_required": True,
                "api_key_present": False,
                "client_ip": _client_ip(request),
            },
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        user_id = validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        logger.warning(
            "auth.rejected",
            extra={"reason": exc.code, "client_ip": _client_ip(request)},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    request.state.user_id = user_id
    logger.info(
        "auth.success",
        extra={
            "auth_required": True,
            "api_key_hash": short_digest(x_api_key),
            "user_id": user_id,
        },
    )


def validate_admin_key(provided_key: str) -> None:
    """Validate that provided key is one of the configured admin keys.

    Admin keys are checked even when APP_API_KEY_REQUIRED=false: clearing a
    limit undoes it, so it is never open to anonymous callers.

    Raises:
        AuthenticationAppError: If no admin keys are configured or the key is unknown.
    """
    admin_keys = set(parse_api_keys(settings.app.admin_api_keys))

    if not admin_keys:
        logger.warning(
            "admin_key_validation_failed",
            extra={"reason": "admin_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="admin_keys_not_configured",
            message="Clearing rate limits is disabled: no admin keys are configured",
            details={"hint": "Set APP_ADMIN_API_KEYS to enable clearing"},
        )

    if provided_key not in admin_keys:
        logger.warning(
            "admin_key_validation_failed",
            extra={
                "reason": "invalid_admin_key",
                "api_key_hash": short_digest(provided_key),
            },
        )
        raise AuthenticationAppError(
            code="invalid_admin_key",
            message="Admin API key required",
        )


async def verify_admin_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency restricting an endpoint to admin keys.

    Admin callers act on other callers' keys, so no user id is bound to the
    request.

    Raises:
        HTTPException: 403 Forbidden if the key is missing or not an admin key.
    """
    request.state.user_id = 0

    try:
        validate_admin_key(x_api_key or "")
    except AuthenticationAppError as exc:
        logger.warning(
            "auth.rejected",
            extra={"reason": exc.code, "client_ip": _client_ip(request)},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.info(
        "auth.admin_success",
        extra={"api_key_hash": short_digest(x_api_key or "")},
    )
