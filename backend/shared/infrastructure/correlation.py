"""
Request correlation middleware.

Adds a correlation ID to every request so log lines from one terminal action
can be grouped across the REST API and the outbox processor.
"""

import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable for the request ID (safe across threads and tasks)
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Uses the incoming X-Request-ID header when present, otherwise generates
    one; exposes it on request.state and echoes it in the response.
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        try:
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers[self.HEADER_NAME] = request_id
            return response
        finally:
            request_id_var.reset(token)


class CorrelationIdFilter:
    """Logging filter that adds request_id to log records."""

    def filter(self, record) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True
