"""Request context middleware for correlation ID tracking."""

import uuid
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from taxlens.core.logging import analysis_context

RequestResponseEndpoint = Callable[[Request], Awaitable[Response]]


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Sets the analysis correlation ID for every request.

    The X-Request-ID header is used when present, otherwise one is
    generated. The analysis engine reuses it as the analysis ID, so log
    lines and the response share one identifier.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        with analysis_context(request_id):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
