"""Identity provider with fixed values (CLI jobs, workers, tests)."""

from __future__ import annotations

from typing import Mapping

from ratewarden.adapters.identity.base import AbstractIdentityProvider


class StaticIdentityProvider(AbstractIdentityProvider):
    def __init__(
        self,
        *,
        user_id: int = 0,
        headers: Mapping[str, str] | None = None,
        remote_address: str | None = None,
    ) -> None:
        if user_id < 0:
            raise ValueError("user_id must be >= 0")

        self._user_id = user_id
        self._headers = dict(headers) if headers is not None else None
        self._remote_address = remote_address

    def current_user_id(self) -> int:
        return self._user_id

    def client_headers(self) -> Mapping[str, str] | None:
        return self._headers

    def remote_address(self) -> str | None:
        return self._remote_address
