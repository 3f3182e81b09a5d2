"""Middleware for the Dynaforms API."""

from dynaforms.infrastructure.api.middleware.context_middleware import (
    CORRELATION_ID_HEADER,
    ContextMiddleware,
)

__all__ = [
    "CORRELATION_ID_HEADER",
    "ContextMiddleware",
]
