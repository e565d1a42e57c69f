"""HTTP middleware for request correlation."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from reposeek.core.logging import clear_request_id, set_request_id

REQUEST_ID_HEADER = "X-Request-ID"

# Type alias for the call_next function
CallNext = Callable[[Request], Awaitable[Response]]


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to every log line of a request.

    An incoming X-Request-ID is reused; otherwise one is generated. The id is
    echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
