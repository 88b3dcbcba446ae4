"""
Read-side queries over stored events.

Builds Elasticsearch request bodies for listing and searching events, for the
newest event of each type reported by a device, and reads the last known
location of a device.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from errors.exceptions import resource_not_found, validation_error
from events.models import LONG_MAX, LONG_MIN, canonical_device_id

logger = logging.getLogger(__name__)

DEVICE_ID_RANGE_PATTERN = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")

# Upper bound on distinct type codes returned per device
MAX_TYPE_BUCKETS = 1000

# Elasticsearch default index.max_result_window; from + size may not exceed it
MAX_RESULT_WINDOW = 10000


def parse_device_id_range(value: str) -> Tuple[int, int]:
    """
    Parse a "min-max" device id range into inclusive bounds.

    Raises:
        AppException: VALIDATION_ERROR when the value isn't two integers joined by '-'
            or a bound does not fit in a long
    """
    match = DEVICE_ID_RANGE_PATTERN.match(value or "")
    if not match:
        raise validation_error(
            "deviceIdRange must look like 'min-max'",
            details={"deviceIdRange": value}
        )
    low, high = int(match.group(1)), int(match.group(2))
    if high > LONG_MAX or low > LONG_MAX:
        raise validation_error(
            "deviceIdRange bounds are out of range",
            details={"deviceIdRange": value}
        )
    return low, high


def escape_wildcard(text: str) -> str:
    """Escape the characters Elasticsearch wildcard queries treat specially."""
    return re.sub(r"([\\*?])", r"\\\1", text)


def build_search_clause(search: str) -> Optional[Dict[str, Any]]:
    """
    Case-insensitive substring match on the event name or Details.description.

    Returns None for an empty search, which then matches every event.
    """
    if not search:
        return None

    pattern = f"*{escape_wildcard(search)}*"
    return {
        "bool": {
            "should": [
                {"wildcard": {"Event_Name": {"value": pattern, "case_insensitive": True}}},
                {"wildcard": {"Details.description": {"value": pattern, "case_insensitive": True}}},
            ],
            "minimum_should_match": 1,
        }
    }


def build_list_query(
    page: int,
    limit: int,
    search: str = "",
    device_id_range: str = "",
    event_type: Optional[int] = None,
    alerts_only: bool = False,
) -> Dict[str, Any]:
    """
    Request body for a page of events, newest first.

    Filters (device number range, exact type, alert marker) are ANDed with
    the optional search clause.
    """
    filters: List[Dict[str, Any]] = []

    if device_id_range:
        min_id, max_id = parse_device_id_range(device_id_range)
        filters.append({"range": {"DEVICE_NUMBER": {"gte": min_id, "lte": max_id}}})

    if event_type is not None:
        if not LONG_MIN <= event_type <= LONG_MAX:
            raise validation_error("type is out of range", details={"type": event_type})
        filters.append({"term": {"Type": event_type}})

    if alerts_only:
        filters.append({"exists": {"field": "AlertType"}})

    bool_query: Dict[str, Any] = {"filter": filters}
    search_clause = build_search_clause(search)
    if search_clause:
        bool_query["must"] = [search_clause]

    return {
        "query": {"bool": bool_query},
        "sort": [{"TS": {"order": "desc"}}],
        "from": (page - 1) * limit,
        "size": limit,
        "track_total_hits": True,
    }


def build_latest_by_type_query(device_id: str) -> Dict[str, Any]:
    """Aggregation returning the newest event per type code, ordered by code."""
    return {
        "query": {"term": {"DEVICE_ID": device_id}},
        "size": 0,
        "aggs": {
            "by_type": {
                "terms": {
                    "field": "Type",
                    "size": MAX_TYPE_BUCKETS,
                    "order": {"_key": "asc"},
                },
                "aggs": {
                    "latest": {
                        "top_hits": {
                            "size": 1,
                            "sort": [{"TS": {"order": "desc"}}],
                        }
                    }
                },
            }
        },
    }


class EventQueryService:
    """
    Listing, search and per-device lookups over stored events.

    Attributes:
        es_service: Elasticsearch service
        max_page_size: Largest page size served; larger requests are capped
    """

    def __init__(self, es_service: Any, max_page_size: int = 100):
        self.es_service = es_service
        self.max_page_size = max_page_size

    def _check_pagination(self, page: int, limit: int) -> int:
        if page < 1:
            raise validation_error("page must be at least 1", details={"page": page})
        if limit < 1:
            raise validation_error("limit must be at least 1", details={"limit": limit})
        return min(limit, self.max_page_size)

    async def list_events(
        self,
        page: int = 1,
        limit: int = 10,
        search: str = "",
        device_id_range: str = "",
        event_type: Optional[int] = None,
        alerts_only: bool = False,
    ) -> Dict[str, Any]:
        """
        One page of events matching the filters and search, newest first.

        Pages beyond the result window report the total with no events.

        Returns:
            {"total", "page", "limit", "events"}
        """
        limit = self._check_pagination(page, limit)
        body = build_list_query(
            page=page,
            limit=limit,
            search=search,
            device_id_range=device_id_range,
            event_type=event_type,
            alerts_only=alerts_only,
        )
        offset = (page - 1) * limit
        if offset >= MAX_RESULT_WINDOW:
            body["from"], body["size"] = 0, 0
        else:
            body["size"] = min(limit, MAX_RESULT_WINDOW - offset)

        response = await self.es_service.search_documents(self.es_service.events_index, body)
        hits = response["hits"]

        return {
            "total": hits["total"]["value"],
            "page": page,
            "limit": limit,
            "events": [hit["_source"] for hit in hits["hits"]],
        }

    async def list_alerts(self, **kwargs) -> Dict[str, Any]:
        """Same as list_events, restricted to alert-worthy events."""
        return await self.list_events(alerts_only=True, **kwargs)

    async def device_exists(self, device_id: str) -> bool:
        """A device is known once it has stored events or a stored location."""
        count = await self.es_service.count_documents(
            self.es_service.events_index,
            {"term": {"DEVICE_ID": device_id}}
        )
        if count > 0:
            return True
        location = await self.es_service.get_document(self.es_service.locations_index, device_id)
        return location is not None

    async def latest_events_by_type(self, device_id: Any) -> List[Dict[str, Any]]:
        """
        The newest event of each type reported by a device, ordered by type code.

        Raises:
            AppException: RESOURCE_NOT_FOUND when the device is unknown
        """
        device_id = canonical_device_id(device_id)
        response = await self.es_service.search_documents(
            self.es_service.events_index,
            build_latest_by_type_query(device_id)
        )

        buckets = response.get("aggregations", {}).get("by_type", {}).get("buckets", [])
        latest_events = [
            bucket["latest"]["hits"]["hits"][0]["_source"]
            for bucket in buckets
            if bucket["latest"]["hits"]["hits"]
        ]

        if not latest_events and not await self.device_exists(device_id):
            raise resource_not_found(
                "No events found for this device ID",
                details={"device_id": device_id}
            )

        logger.debug(
            f"Found {len(latest_events)} event types for device {device_id}",
            extra={"extra_data": {"device_id": device_id, "types": len(latest_events)}}
        )
        return latest_events

    async def get_device_location(self, device_id: Any) -> Dict[str, Any]:
        """
        Last known location of a device.

        Raises:
            AppException: RESOURCE_NOT_FOUND when no location has been resolved yet
        """
        device_id = canonical_device_id(device_id)
        location = await self.es_service.get_document(self.es_service.locations_index, device_id)
        if location is None:
            raise resource_not_found(
                "No location found for this device ID",
                details={"device_id": device_id}
            )
        return location
