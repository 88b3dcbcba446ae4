"""
Device events: type registry, payload models and read-side queries.
"""

from events.types import (
    ALERT_EVENT_TYPES,
    EVENT_TYPE_NAMES,
    LOCATION_EVENT_TYPE,
    UNKNOWN_EVENT_NAME,
    EventClassification,
    classify,
    event_name,
    is_alert_type,
)
from events.models import EventPayload, canonical_device_id, device_number
from events.query import EventQueryService

__all__ = [
    "ALERT_EVENT_TYPES",
    "EVENT_TYPE_NAMES",
    "LOCATION_EVENT_TYPE",
    "UNKNOWN_EVENT_NAME",
    "EventClassification",
    "classify",
    "event_name",
    "is_alert_type",
    "EventPayload",
    "canonical_device_id",
    "device_number",
    "EventQueryService",
]
