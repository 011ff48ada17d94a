"""Pydantic schemas for rate limit responses."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ratewarden.services.rate_limiter import RateLimitStatus


class RateLimitStatusResponse(BaseModel):
    """Quota snapshot for one caller and action."""

    key: str = Field(
        ...,
        description="Logical limiter key (user_<id>_<action> or ip_<hash>_<action>).",
    )
    limit: int = Field(..., ge=1, description="Maximum attempts per window.")
    hits: int = Field(..., ge=0, description="Attempts recorded in the current window.")
    remaining: int = Field(..., ge=0, description="Attempts left in the current window.")
    available_in: int = Field(
        ...,
        ge=0,
        description="Seconds until the caller may try again (0 when not limited).",
    )
    reset_at: int = Field(
        ...,
        ge=0,
        description="UNIX epoch seconds when the window resets (0 when no attempts are recorded).",
    )
    limited: bool = Field(..., description="Whether the caller is currently over the limit.")

    @classmethod
    def from_status(cls, limit_status: RateLimitStatus) -> "RateLimitStatusResponse":
        return cls(
            key=limit_status.key,
            limit=limit_status.limit,
            hits=limit_status.hits,
            remaining=limit_status.remaining,
            available_in=limit_status.available_in,
            reset_at=limit_status.reset_at,
            limited=limit_status.limited,
        )


class ClearRateLimitResponse(BaseModel):
    """Result of clearing a caller's counter."""

    key: str = Field(..., description="Logical limiter key that was cleared.")
    cleared: bool = Field(
        ...,
        description="True when a stored counter existed and was removed.",
    )
