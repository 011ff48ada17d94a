"""HTTP middleware for request ID propagation and request context.

The middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for log correlation
- Stores the request itself in contextvars so identity providers can resolve
  the caller (user id, forwarding headers, connection address)
- Injects request_id and total duration into response headers
- Clears context after request completion to prevent context leaks

Usage:
    app.middleware("http")(request_context_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from ratewarden.adapters.identity.request import clear_current_request, set_current_request
from ratewarden.core.config import settings
from ratewarden.core.logging import clear_request_id, set_request_id


async def request_context_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation and request context.

    If the client provides an X-Request-ID header (configurable via
    LOG_REQUEST_ID_HEADER), that value is used. Otherwise, a new UUID is
    generated. The ID is propagated back in the response headers.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.

    Example:
        >>> # Request arrives with custom ID
        >>> # Headers: {"X-Request-ID": "req-abc-123"}
        >>> # Response includes:
        >>> # {"X-Request-ID": "req-abc-123", "X-Request-Duration-ms": "1.02"}
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    set_current_request(request)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()
        clear_current_request()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
