"""
Request ID middleware for request correlation.

Every request gets an ID, taken from the X-Request-ID header or freshly
generated. It is exposed on request.state for the error handlers, on a context
variable for the JSON log formatter, and echoed back in the response headers.
"""

import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a correlation ID to each request, its logs and its response."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            # Don't leak the ID into whatever the worker handles next
            request_id_var.reset(token)


def get_request_id() -> str:
    """Return the current request's ID, or an empty string outside a request."""
    return request_id_var.get()
