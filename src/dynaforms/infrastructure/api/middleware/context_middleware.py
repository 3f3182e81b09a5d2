"""Middleware for managing request context.

Binds a correlation id to the logging context of every request, echoes it in
the response headers and logs each request outside production.
"""

import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from dynaforms.core.logging import bind_correlation_id, clear_context, get_logger

logger = get_logger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"


def new_correlation_id() -> str:
    return f"cid_{uuid.uuid4().hex[:12]}"


class ContextMiddleware(BaseHTTPMiddleware):
    """Middleware to set up the logging context for every request."""

    def __init__(self, app: ASGIApp, log_requests: bool = True) -> None:
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request with a bound correlation id.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint to call.

        Returns:
            The response from the application.
        """
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or new_correlation_id()
        bind_correlation_id(correlation_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            if self.log_requests:
                logger.info(
                    "Request completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            # Cleanup to prevent context leakage
            clear_context()
