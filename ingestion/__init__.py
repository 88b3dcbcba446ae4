"""
Event ingestion: validation, classification, storage, alerts and the
cell tower location refresh.
"""

from ingestion.service import (
    EventIngestionService,
    IngestionResult,
    LocationUpdateResult,
    build_event_record,
)

__all__ = [
    "EventIngestionService",
    "IngestionResult",
    "LocationUpdateResult",
    "build_event_record",
]
