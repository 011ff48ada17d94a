"""Identity provider bound to the in-flight HTTP request.

The request is stored in a context variable by the HTTP middleware, so a
single process-wide limiter can resolve the caller of whichever request is
currently being served.
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Mapping

from fastapi import Request

from ratewarden.adapters.identity.base import AbstractIdentityProvider

_current_request_var: ContextVar[Request | None] = ContextVar("current_request", default=None)


def set_current_request(request: Request | None) -> None:
    """Store the request being served in a context variable."""

    _current_request_var.set(request)


def get_current_request() -> Request | None:
    return _current_request_var.get()


def clear_current_request() -> None:
    _current_request_var.set(None)


class RequestIdentityProvider(AbstractIdentityProvider):
    """Resolve identity from the current request.

    The user id comes from ``request.state.user_id`` (populated by API key
    authentication). Outside of a request the caller is anonymous with no
    headers and no address.
    """

    def current_user_id(self) -> int:
        request = get_current_request()
        if request is None:
            return 0

        user_id = getattr(request.state, "user_id", 0)
        if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id < 0:
            return 0
        return user_id

    def client_headers(self) -> Mapping[str, str] | None:
        request = get_current_request()
        if request is None:
            return None
        return request.headers

    def remote_address(self) -> str | None:
        request = get_current_request()
        if request is None or request.client is None:
            return None
        return request.client.host
