"""
Error code catalog for the Device Events backend.

Every error surfaced by the API carries one of these codes. Each code maps to
a default HTTP status code.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used in the application.

    - Client errors (4xx): malformed payloads, bad query parameters, unknown devices
    - Dependency errors (5xx): Elasticsearch and the geolocation provider
    - Internal errors (5xx): anything unexpected
    """

    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Request payload or query parameter validation failed (HTTP 400)"""

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    """Requested device or record does not exist (HTTP 404)"""

    # Dependency errors (5xx)
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    """Elasticsearch operation failed (HTTP 500)"""

    GEOLOCATION_FAILED = "GEOLOCATION_FAILED"
    """Cell tower geolocation could not be resolved (HTTP 502)"""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.STORE_UNAVAILABLE: 500,
    ErrorCode.GEOLOCATION_FAILED: 502,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
