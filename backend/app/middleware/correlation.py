"""Correlation ID middleware for request tracing.

Every request (including Paddle webhook deliveries) gets an X-Request-ID;
app.core.logging copies it into each structlog entry so a single delivery
can be followed from signature check to ledger finalize.
"""

import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI


def setup_correlation_middleware(app: FastAPI) -> None:
    """Add correlation ID middleware to FastAPI app.

    Echoes a client-supplied X-Request-ID, otherwise generates a UUID4.
    """
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name="X-Request-ID",
        generator=lambda: str(uuid.uuid4()),
        validator=None,  # Accept any format
        transformer=lambda a: a,
    )


def get_correlation_id() -> str | None:
    """Return the current request's correlation ID, or None outside a request."""
    try:
        return correlation_id.get()
    except LookupError:
        return None


__all__ = ["setup_correlation_middleware", "get_correlation_id"]
