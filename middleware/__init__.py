"""
Middleware components for the Device Events backend.
"""

from middleware.request_id import (
    RequestIDMiddleware,
    request_id_var,
    REQUEST_ID_HEADER,
    get_request_id,
)

__all__ = [
    "RequestIDMiddleware",
    "request_id_var",
    "REQUEST_ID_HEADER",
    "get_request_id",
]
