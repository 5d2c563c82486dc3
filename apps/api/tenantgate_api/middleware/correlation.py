"""Trace ID middleware."""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

TRACE_HEADER = "x-trace-id"
INBOUND_TRACE_HEADERS = ("x-trace-id", "x-request-id")
MAX_TRACE_ID_LENGTH = 128


def _inbound_trace_id(request: Request):
    for name in INBOUND_TRACE_HEADERS:
        value = (request.headers.get(name) or "").strip()
        if value and len(value) <= MAX_TRACE_ID_LENGTH and value.isprintable():
            return value
    return None


def get_trace_id(request: Request) -> str:
    """Trace id of the request, assigning one if the middleware has not run."""
    trace_id = getattr(request.state, "trace_id", None)
    if not trace_id:
        trace_id = _inbound_trace_id(request) or str(uuid.uuid4())
        request.state.trace_id = trace_id
    return trace_id


class TraceIdMiddleware(BaseHTTPMiddleware):
    """Add trace ID to requests and responses."""

    async def dispatch(self, request: Request, call_next):
        """Process request with trace ID."""
        # Get trace ID from header or generate new one
        trace_id = get_trace_id(request)

        # Process request
        response: Response = await call_next(request)

        # Add trace ID to response header
        response.headers[TRACE_HEADER] = trace_id

        return response
