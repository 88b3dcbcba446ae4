"""
Cell tower geolocation.

LOCATION events can carry the identifiers of the cell the device is camped on
instead of GPS coordinates. The resolver turns them into coordinates and an
address through the Unwired Labs geolocation API.

Calls are made once, without timeout or retry.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

import requests

from config.settings import get_settings
from errors.codes import ErrorCode
from errors.exceptions import AppException

logger = logging.getLogger(__name__)

RADIO_TYPE = "gsm"


class GeolocationError(AppException):
    """Raised when cell tower identifiers can't be resolved to a location."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.GEOLOCATION_FAILED,
            message=message,
            details=details
        )


@dataclass
class GeoLocation:
    latitude: float
    longitude: float
    accuracy: Optional[float]
    address: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_provider_request(token: str, cell_info: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build the provider request body from a Details.cell_info block.

    Args:
        token: Provider access token
        cell_info: Mapping with a `cell_towers` entry holding mcc, mnc, lac and cid

    Raises:
        GeolocationError: If cell_towers is missing or incomplete
    """
    towers = cell_info.get("cell_towers") if isinstance(cell_info, dict) else None
    if not isinstance(towers, dict):
        raise GeolocationError("cell_info.cell_towers is missing")

    missing = [key for key in ("mcc", "mnc", "lac", "cid") if towers.get(key) is None]
    if missing:
        raise GeolocationError(
            "cell_info.cell_towers is incomplete",
            details={"missing_fields": missing}
        )

    return {
        "token": token,
        "radio": RADIO_TYPE,
        "mcc": towers["mcc"],
        "mnc": towers["mnc"],
        "cells": [{"lac": towers["lac"], "cid": towers["cid"]}],
        "address": 1,
    }


class GeolocationResolver:
    """
    Resolves cell tower identifiers through the geolocation provider.

    Attributes:
        api_url: Provider endpoint
        api_token: Provider access token, sourced from configuration
    """

    def __init__(self, api_url: Optional[str] = None, api_token: Optional[str] = None):
        if api_url is None or api_token is None:
            settings = get_settings()
            api_url = api_url or settings.geolocation_api_url
            api_token = api_token or settings.geolocation_api_token
        self.api_url = api_url
        self.api_token = api_token

    def _post(self, payload: Dict[str, Any]) -> Any:
        response = requests.post(self.api_url, json=payload)
        response.raise_for_status()
        return response.json()

    async def resolve(self, cell_info: Dict[str, Any]) -> GeoLocation:
        """
        Resolve a Details.cell_info block to a location.

        Raises:
            GeolocationError: On malformed cell info, transport failure or a
                non-"ok" provider status
        """
        payload = build_provider_request(self.api_token, cell_info)

        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, self._post, payload)
        except (requests.RequestException, ValueError) as e:
            logger.error(
                f"Geolocation request failed: {e}",
                extra={"extra_data": {"mcc": payload["mcc"], "mnc": payload["mnc"]}}
            )
            raise GeolocationError("Geolocation service error", details={"error": str(e)}) from e

        if not isinstance(data, dict) or data.get("status") != "ok":
            status = data.get("status") if isinstance(data, dict) else None
            provider_message = data.get("message") if isinstance(data, dict) else None
            logger.error(
                "Geolocation service returned an error status",
                extra={"extra_data": {"status": status, "provider_message": provider_message}}
            )
            raise GeolocationError(
                "Geolocation service error",
                details={"status": status, "provider_message": provider_message}
            )

        if data.get("lat") is None or data.get("lon") is None:
            raise GeolocationError("Geolocation service returned no coordinates")

        return GeoLocation(
            latitude=data.get("lat"),
            longitude=data.get("lon"),
            accuracy=data.get("accuracy"),
            address=data.get("address"),
        )
