"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a request ID so the rate limit log lines
of one request (key hash, verdict, store errors) can be correlated.

The middleware:
- Accepts the incoming request ID header or generates a UUID
- Stores request_id in contextvars for the duration of the request
- Echoes request_id and the total duration in the response headers

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from quota_gate.core.config import settings
from quota_gate.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a request ID to the request context and echo it back.

    The header name comes from ``LOG_REQUEST_ID_HEADER`` (default
    ``X-Request-ID``). Rejected requests (429 and store errors) carry the
    header too, so clients can quote it when reporting a failure.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response with request ID and duration headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
