"""
Event ingestion service.

Validates inbound device events, classifies them by type code, stores them in
Elasticsearch, dispatches alert notifications and, for LOCATION events that
carry cell tower identifiers, refreshes the device's last known location.

The location refresh runs behind its own error boundary: it reports a
LocationUpdateResult and never fails the ingestion of the event itself.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ValidationError

from errors.exceptions import AppException, validation_error
from events.models import (
    EventPayload,
    canonical_device_id,
    device_number,
    missing_required_fields,
)
from events.types import ALERT_MARKER, LOCATION_EVENT_TYPE, EventClassification, classify
from geolocation.service import GeolocationError, GeolocationResolver
from notifications.service import AlertNotifier
from telemetry.service import TelemetryService, get_telemetry_service

logger = logging.getLogger(__name__)

INVALID_MESSAGE_FORMAT = "Invalid apm/device message format"


class LocationUpdateResult(BaseModel):
    """
    Outcome of refreshing a device's location from cell tower info.

    Attributes:
        success: Whether the location record was written
        device_id: Canonical device identifier
        message: What happened, including the failure reason
        location: The stored location record on success
    """

    success: bool
    device_id: str
    message: Optional[str] = None
    location: Optional[Dict[str, Any]] = None


class IngestionResult(BaseModel):
    """
    Outcome of ingesting one event.

    Attributes:
        record: The stored event record
        alert: Whether the event was alert-worthy and a notification was dispatched
        location_update: Result of the location refresh, when one was attempted
    """

    record: Dict[str, Any]
    alert: bool
    location_update: Optional[LocationUpdateResult] = None


def build_event_record(payload: EventPayload, classification: EventClassification) -> Dict[str, Any]:
    """
    Build the document stored for an event.

    AlertType is only present on alert-worthy events; DEVICE_NUMBER only when
    the device identifier is numeric.
    """
    record: Dict[str, Any] = {
        "ID": payload.ID,
        "DEVICE_ID": canonical_device_id(payload.DEVICE_ID),
        "TS": payload.TS,
        "Type": payload.Type,
        "Event_Name": classification.name,
        "Details": dict(payload.Details or {}),
    }

    number = device_number(payload.DEVICE_ID)
    if number is not None:
        record["DEVICE_NUMBER"] = number

    if classification.is_alert:
        record["AlertType"] = ALERT_MARKER

    return record


class EventIngestionService:
    """
    Processes events reported by devices.

    Attributes:
        es_service: Elasticsearch service used for storage
        resolver: Cell tower geolocation resolver
        notifier: Alert notifier
        telemetry: Telemetry service for metrics and audit records
    """

    def __init__(
        self,
        es_service: Any,
        resolver: GeolocationResolver,
        notifier: AlertNotifier,
        telemetry: Optional[TelemetryService] = None
    ):
        self.es_service = es_service
        self.resolver = resolver
        self.notifier = notifier
        self.telemetry = telemetry or get_telemetry_service()

    def _parse_payload(self, payload: Union[EventPayload, Dict[str, Any]]) -> EventPayload:
        if isinstance(payload, EventPayload):
            return payload
        if not isinstance(payload, dict):
            raise validation_error(INVALID_MESSAGE_FORMAT)
        try:
            return EventPayload.model_validate(payload)
        except ValidationError as e:
            raise validation_error(
                INVALID_MESSAGE_FORMAT,
                details={"validation_errors": e.errors(include_url=False, include_context=False)}
            )

    async def ingest(self, payload: Union[EventPayload, Dict[str, Any]]) -> IngestionResult:
        """
        Validate, classify and store one event.

        Raises:
            AppException: VALIDATION_ERROR when DEVICE_ID, ID, TS or Type is
                missing; STORE_UNAVAILABLE when the event can't be stored.
        """
        start_time = datetime.utcnow()

        event = self._parse_payload(payload)
        missing = missing_required_fields(event)
        if missing:
            logger.warning(
                "Rejected event with missing fields",
                extra={"extra_data": {"missing_fields": missing, "device_id": event.DEVICE_ID}}
            )
            raise validation_error(INVALID_MESSAGE_FORMAT, details={"missing_fields": missing})

        classification = classify(event.Type)
        record = build_event_record(event, classification)

        await self.es_service.index_document(
            index=self.es_service.events_index,
            document=record
        )

        if classification.is_alert:
            self.notifier.dispatch(record)
            if self.telemetry:
                self.telemetry.log_alert_event(record)

        location_update = None
        cell_info = record["Details"].get("cell_info")
        if event.Type == LOCATION_EVENT_TYPE and cell_info:
            location_update = await self._update_device_location(record["DEVICE_ID"], cell_info)

        duration_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
        if self.telemetry:
            self.telemetry.record_metric(
                "event_ingest_duration_ms",
                duration_ms,
                tags={"event_name": classification.name}
            )

        logger.info(
            f"Stored {classification.name} event for device {record['DEVICE_ID']}",
            extra={"extra_data": {
                "device_id": record["DEVICE_ID"],
                "event_id": record["ID"],
                "type": record["Type"],
                "alert": classification.is_alert,
                "duration_ms": duration_ms,
            }}
        )

        return IngestionResult(
            record=record,
            alert=classification.is_alert,
            location_update=location_update
        )

    async def _update_device_location(self, device_id: str, cell_info: Dict[str, Any]) -> LocationUpdateResult:
        """
        Resolve cell tower info and upsert the device's location record.

        Every failure is turned into an unsuccessful result and logged.
        """
        try:
            geo = await self.resolver.resolve(cell_info)

            location = {
                "DEVICE_ID": device_id,
                **geo.to_dict(),
                "lastUpdated": datetime.now(timezone.utc).isoformat(),
            }
            await self.es_service.index_document(
                index=self.es_service.locations_index,
                document=location,
                doc_id=device_id
            )
        except GeolocationError as e:
            logger.warning(
                f"Location update skipped for device {device_id}: {e.message}",
                extra={"extra_data": {"device_id": device_id, "details": e.details}}
            )
            return LocationUpdateResult(success=False, device_id=device_id, message=e.message)
        except AppException as e:
            logger.error(
                f"Failed to store location for device {device_id}: {e.message}",
                extra={"extra_data": {"device_id": device_id, "details": e.details}}
            )
            return LocationUpdateResult(success=False, device_id=device_id, message=e.message)
        except Exception as e:
            logger.error(
                f"Error processing location data for device {device_id}: {e}",
                extra={"extra_data": {"device_id": device_id}},
                exc_info=True
            )
            return LocationUpdateResult(
                success=False,
                device_id=device_id,
                message=f"Failed to process location: {e}"
            )

        logger.info(
            f"Location updated for device {device_id}",
            extra={"extra_data": {
                "device_id": device_id,
                "latitude": location["latitude"],
                "longitude": location["longitude"],
            }}
        )
        return LocationUpdateResult(
            success=True,
            device_id=device_id,
            message="Location updated",
            location=location
        )
