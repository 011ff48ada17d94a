"""Per-action rate limit endpoints.

Recording and reading work on the caller's own key for ``action``:
``user_<id>_<action>`` when the API key is bound to a user,
``ip_<hash>_<action>`` otherwise. Clearing takes an admin key and an explicit
target, so a limited caller cannot reset their own counter.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Response

from ratewarden.core import rate_limit
from ratewarden.core.auth import verify_admin_key, verify_api_key
from ratewarden.core.errors import ValidationAppError
from ratewarden.schemas.rate_limit import ClearRateLimitResponse, RateLimitStatusResponse
from ratewarden.services.client_ip import normalize_ip
from ratewarden.services.rate_limiter import ip_key, user_key

router = APIRouter(
    tags=["Limits"],
    dependencies=[Depends(verify_api_key), Depends(rate_limit.enforce_rate_limit)],
)

ActionName = Annotated[
    str,
    Path(
        min_length=1,
        max_length=64,
        pattern=r"^[A-Za-z0-9_.:-]+$",
        description="Action identifier, e.g. 'login' or 'password-reset'.",
    ),
]


@router.post("/limits/{action}/hit", response_model=RateLimitStatusResponse)
def record_hit(action: ActionName, response: Response) -> RateLimitStatusResponse:
    """Record one attempt of ``action`` for the caller.

    Returns the quota left after the attempt. When the caller is already over
    the limit the attempt is not recorded and the endpoint answers 429 with
    ``Retry-After``.
    """
    limiter = rate_limit.get_action_limiter()
    key = limiter.for_user(action)

    def _on_limited(wait_seconds: int) -> None:
        raise rate_limit.rate_limited_exception(limiter.status(key))

    limit_status = limiter.attempt(key, lambda: limiter.status(key), on_limited=_on_limited)

    response.headers.update(rate_limit.rate_limit_headers(limit_status))
    return RateLimitStatusResponse.from_status(limit_status)


@router.get("/limits/{action}", response_model=RateLimitStatusResponse)
def get_limit_status(action: ActionName, response: Response) -> RateLimitStatusResponse:
    """Return the caller's quota for ``action`` without recording an attempt."""
    limiter = rate_limit.get_action_limiter()
    limit_status = limiter.status(limiter.for_user(action))

    response.headers.update(rate_limit.rate_limit_headers(limit_status))
    return RateLimitStatusResponse.from_status(limit_status)


admin_router = APIRouter(
    tags=["Limits"],
    dependencies=[Depends(verify_admin_key), Depends(rate_limit.enforce_rate_limit)],
)


@admin_router.delete("/limits/{action}", response_model=ClearRateLimitResponse)
def clear_limit(
    action: ActionName,
    user_id: Annotated[int | None, Query(ge=1, description="User whose limit to clear.")] = None,
    ip: Annotated[
        str | None,
        Query(max_length=45, description="Client address whose limit to clear."),
    ] = None,
) -> ClearRateLimitResponse:
    """Reset one caller's counter for ``action``. Requires an admin key.

    Exactly one of ``user_id`` or ``ip`` names the caller.
    """
    if (user_id is None) == (ip is None):
        raise ValidationAppError(
            code="clear_target_invalid",
            message="Provide exactly one of user_id or ip",
        )

    if user_id is not None:
        key = user_key(user_id, action)
    else:
        address = normalize_ip(ip) if "," not in ip else None
        if address is None:
            raise ValidationAppError(
                code="clear_target_invalid",
                message="ip must be a single IPv4 or IPv6 address",
            )
        key = ip_key(address, action)

    limiter = rate_limit.get_action_limiter()
    return ClearRateLimitResponse(key=key, cleared=limiter.clear(key))
