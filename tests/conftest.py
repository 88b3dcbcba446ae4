"""
Shared pytest fixtures and configuration for all tests.
"""
import copy
import os
import re
import uuid
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock, AsyncMock

import pytest

# Required settings must exist before any application module is imported
os.environ.setdefault("ELASTIC_ENDPOINT", "https://elasticsearch.test:9200")
os.environ.setdefault("ELASTIC_API_KEY", "test-api-key")
os.environ.setdefault("GEOLOCATION_API_TOKEN", "test-geo-token")
os.environ["ALERT_WEBHOOK_URL"] = ""

from elasticsearch import BadRequestError, NotFoundError
from hypothesis import settings, Verbosity

from geolocation.service import GeoLocation

settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
    print_blob=True,
)
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


def _get_field(document: Dict[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _wildcard_to_regex(pattern: str) -> str:
    parts = []
    chars = iter(pattern)
    for char in chars:
        if char == "\\":
            parts.append(re.escape(next(chars, "")))
        elif char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "".join(parts)


class FakeElasticsearchClient:
    """
    In-memory stand-in for the Elasticsearch client.

    Evaluates the subset of the query DSL the services build: bool
    (filter/must/should), term, range, exists, wildcard, match_all, sorting,
    from/size paging within the default result window of 10000 hits and
    terms + top_hits aggregations.
    """

    def __init__(self):
        self.documents: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.indices = MagicMock()
        self.indices.exists.return_value = False
        self.available = True
        self.max_result_window = 10000

    def _check_available(self):
        if not self.available:
            raise ConnectionError("connection refused")

    def ping(self) -> bool:
        return self.available

    def index(self, index: str, document: Dict[str, Any], id: Optional[str] = None, refresh=None):
        self._check_available()
        doc_id = id or uuid.uuid4().hex
        store = self.documents.setdefault(index, {})
        result = "updated" if doc_id in store else "created"
        store[doc_id] = copy.deepcopy(document)
        return {"_index": index, "_id": doc_id, "result": result}

    def get(self, index: str, id: str):
        self._check_available()
        store = self.documents.get(index, {})
        if id not in store:
            raise NotFoundError("document missing", meta=MagicMock(status=404), body={"found": False})
        return {"_index": index, "_id": id, "found": True, "_source": copy.deepcopy(store[id])}

    def count(self, index: str, query: Optional[Dict[str, Any]] = None):
        self._check_available()
        return {"count": len(self._matching(index, query))}

    def search(
        self,
        index: str,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Dict[str, Any]]] = None,
        from_: int = 0,
        size: int = 10,
        aggs: Optional[Dict[str, Any]] = None,
        track_total_hits=None,
    ):
        self._check_available()
        if from_ + size > self.max_result_window:
            raise BadRequestError(
                "Result window is too large",
                meta=MagicMock(status=400),
                body={"error": {"type": "illegal_argument_exception"}},
            )
        matches = self._matching(index, query)
        matches = self._sorted(matches, sort)

        response: Dict[str, Any] = {
            "hits": {
                "total": {"value": len(matches), "relation": "eq"},
                "hits": [
                    {"_id": doc_id, "_source": copy.deepcopy(source)}
                    for doc_id, source in matches[from_:from_ + size]
                ],
            }
        }
        if aggs:
            response["aggregations"] = {
                name: self._aggregate(matches, body) for name, body in aggs.items()
            }
        return response

    def _matching(self, index: str, query: Optional[Dict[str, Any]]):
        store = self.documents.get(index, {})
        return [
            (doc_id, source) for doc_id, source in store.items()
            if query is None or self._matches(source, query)
        ]

    def _sorted(self, matches, sort):
        for sort_clause in reversed(sort or []):
            for field, options in sort_clause.items():
                reverse = options.get("order", "asc") == "desc"
                matches = sorted(matches, key=lambda item: _get_field(item[1], field), reverse=reverse)
        return matches

    def _aggregate(self, matches, body):
        terms = body["terms"]
        groups: Dict[Any, list] = {}
        for doc_id, source in matches:
            key = _get_field(source, terms["field"])
            if key is not None:
                groups.setdefault(key, []).append((doc_id, source))

        reverse = terms.get("order", {}).get("_key", "asc") == "desc"
        buckets = []
        for key in sorted(groups, reverse=reverse)[:terms.get("size", 10)]:
            bucket: Dict[str, Any] = {"key": key, "doc_count": len(groups[key])}
            for sub_name, sub_body in body.get("aggs", {}).items():
                top_hits = sub_body["top_hits"]
                hits = self._sorted(groups[key], top_hits.get("sort"))[:top_hits.get("size", 3)]
                bucket[sub_name] = {"hits": {"hits": [
                    {"_id": doc_id, "_source": copy.deepcopy(source)} for doc_id, source in hits
                ]}}
            buckets.append(bucket)
        return {"buckets": buckets}

    def _matches(self, source: Dict[str, Any], clause: Dict[str, Any]) -> bool:
        if "match_all" in clause:
            return True
        if "bool" in clause:
            body = clause["bool"]
            if not all(self._matches(source, c) for c in body.get("filter", [])):
                return False
            if not all(self._matches(source, c) for c in body.get("must", [])):
                return False
            should = body.get("should", [])
            if should:
                needed = body.get("minimum_should_match", 1)
                if sum(self._matches(source, c) for c in should) < needed:
                    return False
            return True
        if "term" in clause:
            field, value = next(iter(clause["term"].items()))
            return _get_field(source, field) == value
        if "range" in clause:
            field, bounds = next(iter(clause["range"].items()))
            value = _get_field(source, field)
            if value is None:
                return False
            if "gte" in bounds and value < bounds["gte"]:
                return False
            if "lte" in bounds and value > bounds["lte"]:
                return False
            return True
        if "exists" in clause:
            return _get_field(source, clause["exists"]["field"]) is not None
        if "wildcard" in clause:
            field, body = next(iter(clause["wildcard"].items()))
            value = _get_field(source, field)
            if not isinstance(value, str):
                return False
            flags = re.IGNORECASE if body.get("case_insensitive") else 0
            return re.fullmatch(_wildcard_to_regex(body["value"]), value, flags) is not None
        raise AssertionError(f"Unsupported query clause: {clause}")


@pytest.fixture
def fake_es_client() -> FakeElasticsearchClient:
    return FakeElasticsearchClient()


@pytest.fixture
def es_service(fake_es_client):
    """ElasticsearchService wired to the in-memory client."""
    from config.settings import get_settings
    from services.elasticsearch_service import ElasticsearchService

    return ElasticsearchService(settings=get_settings(), client=fake_es_client)


@pytest.fixture
def mock_es_service() -> MagicMock:
    """Mock Elasticsearch service for unit tests of the services above it."""
    mock = MagicMock()
    mock.events_index = "device_events"
    mock.locations_index = "device_locations"
    mock.index_document = AsyncMock(return_value={"result": "created"})
    mock.search_documents = AsyncMock(return_value={"hits": {"hits": [], "total": {"value": 0}}})
    mock.count_documents = AsyncMock(return_value=0)
    mock.get_document = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def mock_resolver() -> MagicMock:
    mock = MagicMock()
    mock.resolve = AsyncMock(return_value=GeoLocation(
        latitude=28.6139,
        longitude=77.209,
        accuracy=1200,
        address="Connaught Place, New Delhi, India",
    ))
    return mock


@pytest.fixture
def mock_notifier() -> MagicMock:
    mock = MagicMock()
    mock.dispatch = MagicMock(return_value=None)
    return mock


@pytest.fixture
def sample_event_payload() -> dict:
    """A non-alert event as a device sends it."""
    return {
        "DEVICE_ID": 1001,
        "ID": 52,
        "TS": 1718000000,
        "Type": 20,
        "Details": {"uptime": 3600},
    }


@pytest.fixture
def sample_location_payload() -> dict:
    """A LOCATION event carrying cell tower identifiers."""
    return {
        "DEVICE_ID": 1001,
        "ID": 53,
        "TS": 1718000100,
        "Type": 1,
        "Details": {
            "cell_info": {
                "cell_towers": {"mcc": 404, "mnc": 45, "lac": 2100, "cid": 31542},
            },
        },
    }


class DummyResp:
    def __init__(self, data, status=200):
        self._data = data
        self.status_code = status

    def raise_for_status(self):
        import requests

        if not (200 <= self.status_code < 300):
            raise requests.HTTPError(f"status {self.status_code}")

    def json(self):
        if isinstance(self._data, Exception):
            raise self._data
        return self._data


@pytest.fixture
def dummy_response():
    return DummyResp
