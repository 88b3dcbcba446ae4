"""
Exception handlers for the Device Events backend.

Every error leaves the API as
{"error_code", "message", "details"?, "request_id"}. Unexpected exceptions are
logged with their stack trace and rendered without internal details.
"""

import logging
import traceback
import uuid
from typing import Any, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors.codes import ErrorCode
from errors.exceptions import AppException, internal_error

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Structured error response model shared by all handlers."""
    error_code: str
    message: str
    details: Optional[dict[str, Any]] = None
    request_id: str


def get_request_id(request: Request) -> str:
    """
    Get the request ID set by RequestIDMiddleware, or generate one.

    Args:
        request: The FastAPI request object

    Returns:
        The request ID string
    """
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return str(uuid.uuid4())


async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    """
    Convert an AppException into a structured JSON response.

    Args:
        request: The FastAPI request object
        exc: The AppException that was raised

    Returns:
        JSONResponse with the exception's status code
    """
    request_id = get_request_id(request)

    logger.warning(
        "Application error occurred",
        extra={"extra_data": {
            "error_code": exc.error_code.value,
            "error_message": exc.message,
            "status_code": exc.status_code,
            "details": exc.details,
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }}
    )

    error_response = ErrorResponse(
        error_code=exc.error_code.value,
        message=exc.message,
        details=exc.details,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(exclude_none=True),
    )


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Render FastAPI's request validation failures as VALIDATION_ERROR (400).

    Missing or mistyped query parameters (for example an absent deviceId)
    are client errors like any other validation failure.
    """
    errors = jsonable_encoder(exc.errors())
    fields = [
        ".".join(str(loc) for loc in error.get("loc", []) if loc not in ("query", "body", "path"))
        for error in errors
    ]
    message = "Invalid request"
    if fields and fields[0]:
        message = f"Invalid request: {', '.join(f for f in fields if f)}"

    return await handle_app_exception(
        request,
        AppException(
            error_code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details={"validation_errors": errors},
        ),
    )


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions without exposing internal details.

    The full stack trace is logged; the client gets a generic 500.
    """
    request_id = get_request_id(request)

    logger.error(
        "Unexpected error occurred",
        extra={"extra_data": {
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "stack_trace": traceback.format_exc(),
        }},
        exc_info=True,
    )

    opaque = internal_error()
    error_response = ErrorResponse(
        error_code=opaque.error_code.value,
        message=opaque.message,
        details=None,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=opaque.status_code,
        content=error_response.model_dump(exclude_none=True),
    )


def register_exception_handlers(app) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(AppException, handle_app_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_exception)

    logger.info("Exception handlers registered successfully")
