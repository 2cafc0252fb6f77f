"""Correlation context middleware for request tracing.

Propagates request and correlation ids to logging through contextvars and
echoes them on the response.
"""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from summadoc.observability.logging import LogContext


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Extract or generate correlation ids for each request.

    Headers:
    - x-request-id: Unique ID for this request
    - x-correlation-id: ID for tracking across services (passed through)
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        correlation_id = request.headers.get("x-correlation-id") or request_id

        # user_id is filled in by authentication and cleared on the way out
        with LogContext(request_id=request_id, correlation_id=correlation_id, user_id=""):
            request.state.request_id = request_id
            request.state.correlation_id = correlation_id

            response = await call_next(request)

            response.headers["x-request-id"] = request_id
            response.headers["x-correlation-id"] = correlation_id
            return response
