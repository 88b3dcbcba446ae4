"""
Unit tests for request ID middleware.

Every request must carry a correlation ID: taken from X-Request-ID when the
caller sends one, generated otherwise, and visible to handlers, error
responses and log records.
"""

import uuid

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from errors.exceptions import resource_not_found
from errors.handlers import register_exception_handlers
from middleware.request_id import (
    RequestIDMiddleware,
    request_id_var,
    get_request_id,
    REQUEST_ID_HEADER,
)


@pytest.fixture
def app():
    app = FastAPI()
    register_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/events")
    async def list_events(request: Request):
        return {
            "request_id_from_state": request.state.request_id,
            "request_id_from_context": get_request_id(),
        }

    @app.get("/api/events/latest")
    async def latest():
        raise resource_not_found("No events found for this device ID")

    @app.get("/boom")
    async def boom():
        raise ValueError("unexpected")

    return app


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


class TestRequestIDMiddleware:
    """Tests for the RequestIDMiddleware class."""

    def test_generates_uuid_when_header_missing(self, client):
        response = client.get("/api/events")

        request_id = response.headers[REQUEST_ID_HEADER]
        assert str(uuid.UUID(request_id)) == request_id
        assert response.json()["request_id_from_state"] == request_id

    def test_reuses_caller_request_id(self, client):
        response = client.get("/api/events", headers={REQUEST_ID_HEADER: "gateway-abc-123"})

        assert response.headers[REQUEST_ID_HEADER] == "gateway-abc-123"
        assert response.json() == {
            "request_id_from_state": "gateway-abc-123",
            "request_id_from_context": "gateway-abc-123",
        }

    def test_empty_header_generates_new_id(self, client):
        response = client.get("/api/events", headers={REQUEST_ID_HEADER: ""})

        assert len(response.headers[REQUEST_ID_HEADER]) == 36

    def test_requests_get_distinct_ids(self, client):
        first = client.get("/api/events").headers[REQUEST_ID_HEADER]
        second = client.get("/api/events").headers[REQUEST_ID_HEADER]

        assert first != second

    def test_context_reset_after_request(self, client):
        client.get("/api/events", headers={REQUEST_ID_HEADER: "first-request-id"})

        assert request_id_var.get() == ""

    def test_context_reset_after_unhandled_error(self, client):
        response = client.get("/boom", headers={REQUEST_ID_HEADER: "error-request-id"})

        assert response.status_code == 500
        assert request_id_var.get() == ""

    def test_error_response_carries_request_id(self, client):
        response = client.get("/api/events/latest", headers={REQUEST_ID_HEADER: "lookup-42"})

        assert response.status_code == 404
        assert response.json()["request_id"] == "lookup-42"
        assert response.headers[REQUEST_ID_HEADER] == "lookup-42"


class TestGetRequestIdFunction:
    """Tests for the get_request_id helper function."""

    def test_returns_context_value(self):
        token = request_id_var.set("test-context-id")
        try:
            assert get_request_id() == "test-context-id"
        finally:
            request_id_var.reset(token)

    def test_empty_outside_request(self):
        assert get_request_id() == ""
