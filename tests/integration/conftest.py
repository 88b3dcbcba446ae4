"""
Fixtures for endpoint tests.

The real FastAPI app is used with its service dependencies overridden: the
Elasticsearch service runs on the in-memory client, the geolocation resolver
and alert notifier are mocks. The lifespan is not entered, so no connection
to a real cluster is attempted.
"""

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from events.query import EventQueryService
from ingestion.service import EventIngestionService


@pytest.fixture
def app():
    from main import app as fastapi_app
    return fastapi_app


@pytest.fixture
def ingestion_service(es_service, mock_resolver, mock_notifier):
    return EventIngestionService(
        es_service=es_service,
        resolver=mock_resolver,
        notifier=mock_notifier,
        telemetry=MagicMock(),
    )


@pytest.fixture
def query_service(es_service):
    return EventQueryService(es_service=es_service, max_page_size=100)


@pytest.fixture
def client(app, ingestion_service, query_service):
    from event_endpoints import get_ingestion_service, get_query_service

    app.dependency_overrides[get_ingestion_service] = lambda: ingestion_service
    app.dependency_overrides[get_query_service] = lambda: query_service
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def post_event(client):
    def _post(**fields):
        payload = {"DEVICE_ID": 1001, "ID": 1, "TS": 1718000000, "Type": 20, "Details": {}}
        payload.update(fields)
        response = client.post("/api/events", json=payload)
        assert response.status_code == 201, response.text
        return payload
    return _post
