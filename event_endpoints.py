"""
HTTP endpoints for device events.

Routes stay thin: they parse query parameters and delegate to the ingestion
and query services, which raise AppExceptions for the error handlers to render.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from config.settings import get_settings
from errors.exceptions import validation_error
from events.query import EventQueryService
from geolocation.service import GeolocationResolver
from ingestion.service import EventIngestionService
from notifications.service import AlertNotifier
from services.elasticsearch_service import get_elasticsearch_service
from telemetry.service import get_telemetry_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])

_alert_notifier: Optional[AlertNotifier] = None
_ingestion_service: Optional[EventIngestionService] = None
_query_service: Optional[EventQueryService] = None


def get_alert_notifier() -> AlertNotifier:
    global _alert_notifier
    if _alert_notifier is None:
        _alert_notifier = AlertNotifier()
    return _alert_notifier


def get_ingestion_service() -> EventIngestionService:
    global _ingestion_service
    if _ingestion_service is None:
        _ingestion_service = EventIngestionService(
            es_service=get_elasticsearch_service(),
            resolver=GeolocationResolver(),
            notifier=get_alert_notifier(),
            telemetry=get_telemetry_service()
        )
    return _ingestion_service


def get_query_service() -> EventQueryService:
    global _query_service
    if _query_service is None:
        _query_service = EventQueryService(
            es_service=get_elasticsearch_service(),
            max_page_size=get_settings().max_page_size
        )
    return _query_service


@router.post("", status_code=201)
async def save_event(
    payload: Dict[str, Any] = Body(...),
    service: EventIngestionService = Depends(get_ingestion_service),
):
    """Ingest one device event."""
    await service.ingest(payload)
    return {"message": "Event data saved successfully."}


@router.get("")
async def list_events(
    page: int = Query(1),
    limit: int = Query(10),
    search: str = Query(""),
    device_id_range: str = Query("", alias="deviceIdRange"),
    event_type: Optional[int] = Query(None, alias="type"),
    service: EventQueryService = Depends(get_query_service),
):
    """Paginated event listing with optional device range, type and text search."""
    return await service.list_events(
        page=page,
        limit=limit,
        search=search,
        device_id_range=device_id_range,
        event_type=event_type,
    )


@router.get("/alerts")
async def list_alerts(
    page: int = Query(1),
    limit: int = Query(10),
    search: str = Query(""),
    device_id_range: str = Query("", alias="deviceIdRange"),
    event_type: Optional[int] = Query(None, alias="type"),
    service: EventQueryService = Depends(get_query_service),
):
    """Paginated listing of alert-worthy events."""
    return await service.list_alerts(
        page=page,
        limit=limit,
        search=search,
        device_id_range=device_id_range,
        event_type=event_type,
    )


@router.get("/latest")
async def latest_events_by_type(
    device_id: Optional[str] = Query(None, alias="deviceId"),
    service: EventQueryService = Depends(get_query_service),
) -> List[Dict[str, Any]]:
    """Newest event of each type for one device."""
    if not device_id or not device_id.strip():
        raise validation_error("Device ID is required")
    return await service.latest_events_by_type(device_id)


@router.get("/location/{device_id}")
async def device_location(
    device_id: str,
    service: EventQueryService = Depends(get_query_service),
):
    """Last known location of a device, resolved from cell tower info."""
    return await service.get_device_location(device_id)
