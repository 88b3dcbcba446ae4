"""
Cell tower geolocation through the Unwired Labs API.
"""

from geolocation.service import (
    GeoLocation,
    GeolocationError,
    GeolocationResolver,
    build_provider_request,
)

__all__ = [
    "GeoLocation",
    "GeolocationError",
    "GeolocationResolver",
    "build_provider_request",
]
