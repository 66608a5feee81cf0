"""Logging middleware for FastAPI.

Adds a per-request UUID (echoed in the X-Request-ID header), binds it to the logging
contextvars and measures latency for the access log.
"""

import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from linkcard.core.logging_config import bind_log_context, log_request, reset_log_context


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests/responses with timing metadata."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        tokens = bind_log_context(request_id=request_id)

        start_time = time.perf_counter()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            log_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=response.status_code if response else 500,
                duration_ms=duration_ms,
                request_id=request_id,
            )
            reset_log_context(tokens)

        response.headers["X-Request-ID"] = request_id
        return response
