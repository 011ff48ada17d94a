"""Identity provider interfaces.

The limiter builds per-user and per-address keys from whatever identity the
hosting context supplies. Keeping that behind an interface lets the same
limiter run inside an HTTP request, a worker job or a test.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping


class AbstractIdentityProvider(ABC):
    """Interface for resolving who is making the current call."""

    @abstractmethod
    def current_user_id(self) -> int:
        """Return the authenticated user id, or 0 for anonymous callers."""
        raise NotImplementedError

    @abstractmethod
    def client_headers(self) -> Mapping[str, str] | None:
        """Return the client's request headers, if any."""
        raise NotImplementedError

    @abstractmethod
    def remote_address(self) -> str | None:
        """Return the direct connection address, if known."""
        raise NotImplementedError
