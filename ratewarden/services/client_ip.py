"""Client address resolution for per-address rate limit keys."""

from __future__ import annotations

import ipaddress
from typing import Mapping

LOOPBACK_ADDRESS = "127.0.0.1"

# Checked in order; the direct connection address comes last.
FORWARDING_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "X-Forwarded-For",
    "X-Real-IP",
)


def _lookup_header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value

    lowered = name.lower()
    for header_name, header_value in headers.items():
        if header_name.lower() == lowered:
            return header_value
    return None


def normalize_ip(value: str | None) -> str | None:
    """Return a valid IP address string from a header value, or None.

    Comma-separated lists (X-Forwarded-For) are reduced to their first entry.
    """

    if not value:
        return None

    candidate = value.split(",", 1)[0].strip()
    if not candidate:
        return None

    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return None
    return candidate


def resolve_client_ip(
    headers: Mapping[str, str] | None,
    remote_address: str | None = None,
) -> str:
    """Resolve the client's IP address.

    Args:
        headers: Request headers (may be None outside of HTTP).
        remote_address: Direct connection address.

    Returns:
        The first syntactically valid address among the forwarding headers
        and the connection address, or 127.0.0.1 if none validates.

    Examples:
        >>> resolve_client_ip({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        '203.0.113.7'
        >>> resolve_client_ip({"X-Real-IP": "not-an-ip"}, "198.51.100.2")
        '198.51.100.2'
        >>> resolve_client_ip(None)
        '127.0.0.1'
    """

    candidates: list[str | None] = []
    if headers:
        candidates.extend(_lookup_header(headers, name) for name in FORWARDING_HEADERS)
    candidates.append(remote_address)

    for raw in candidates:
        address = normalize_ip(raw)
        if address is not None:
            return address

    return LOOPBACK_ADDRESS
