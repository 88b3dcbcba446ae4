"""
Unit tests for cell tower geolocation.

The provider is never contacted: requests.post is replaced per test.
"""

import pytest
import requests

from errors.codes import ErrorCode
from geolocation.service import (
    GeolocationError,
    GeolocationResolver,
    build_provider_request,
)

CELL_INFO = {"cell_towers": {"mcc": 404, "mnc": 45, "lac": 2100, "cid": 31542}}

OK_RESPONSE = {
    "status": "ok",
    "balance": 99,
    "lat": 28.6139,
    "lon": 77.209,
    "accuracy": 1200,
    "address": "Connaught Place, New Delhi, India",
}


@pytest.fixture
def resolver():
    return GeolocationResolver(api_url="https://geo.test/v2/process.php", api_token="tok-123")


class TestBuildProviderRequest:
    """Tests for build_provider_request()."""

    def test_request_body(self):
        body = build_provider_request("tok-123", CELL_INFO)

        assert body == {
            "token": "tok-123",
            "radio": "gsm",
            "mcc": 404,
            "mnc": 45,
            "cells": [{"lac": 2100, "cid": 31542}],
            "address": 1,
        }

    def test_missing_towers(self):
        with pytest.raises(GeolocationError) as exc_info:
            build_provider_request("tok", {"signal": -70})

        assert exc_info.value.error_code == ErrorCode.GEOLOCATION_FAILED

    def test_incomplete_towers(self):
        with pytest.raises(GeolocationError) as exc_info:
            build_provider_request("tok", {"cell_towers": {"mcc": 404, "mnc": 45}})

        assert exc_info.value.details == {"missing_fields": ["lac", "cid"]}


class TestGeolocationResolver:
    """Tests for GeolocationResolver.resolve()."""

    @pytest.mark.asyncio
    async def test_resolves_location(self, resolver, monkeypatch, dummy_response):
        captured = {}

        def fake_post(url, json=None, **kwargs):
            captured["url"] = url
            captured["json"] = json
            return dummy_response(OK_RESPONSE)

        monkeypatch.setattr(requests, "post", fake_post)

        location = await resolver.resolve(CELL_INFO)

        assert captured["url"] == "https://geo.test/v2/process.php"
        assert captured["json"]["token"] == "tok-123"
        assert location.latitude == 28.6139
        assert location.longitude == 77.209
        assert location.accuracy == 1200
        assert location.address == "Connaught Place, New Delhi, India"

    @pytest.mark.asyncio
    async def test_error_status(self, resolver, monkeypatch, dummy_response):
        monkeypatch.setattr(
            requests, "post",
            lambda url, json=None, **kw: dummy_response({"status": "error", "message": "Invalid token"})
        )

        with pytest.raises(GeolocationError) as exc_info:
            await resolver.resolve(CELL_INFO)

        assert exc_info.value.message == "Geolocation service error"
        assert exc_info.value.details["provider_message"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_http_error(self, resolver, monkeypatch, dummy_response):
        monkeypatch.setattr(requests, "post", lambda url, json=None, **kw: dummy_response({}, status=503))

        with pytest.raises(GeolocationError):
            await resolver.resolve(CELL_INFO)

    @pytest.mark.asyncio
    async def test_connection_error(self, resolver, monkeypatch):
        def fake_post(url, json=None, **kwargs):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr(requests, "post", fake_post)

        with pytest.raises(GeolocationError) as exc_info:
            await resolver.resolve(CELL_INFO)

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_invalid_json(self, resolver, monkeypatch, dummy_response):
        monkeypatch.setattr(
            requests, "post",
            lambda url, json=None, **kw: dummy_response(ValueError("not json"))
        )

        with pytest.raises(GeolocationError):
            await resolver.resolve(CELL_INFO)

    @pytest.mark.asyncio
    async def test_missing_coordinates(self, resolver, monkeypatch, dummy_response):
        monkeypatch.setattr(requests, "post", lambda url, json=None, **kw: dummy_response({"status": "ok"}))

        with pytest.raises(GeolocationError) as exc_info:
            await resolver.resolve(CELL_INFO)

        assert exc_info.value.message == "Geolocation service returned no coordinates"

    @pytest.mark.asyncio
    async def test_incomplete_cell_info_is_not_sent(self, resolver, monkeypatch):
        calls = []
        monkeypatch.setattr(requests, "post", lambda *a, **kw: calls.append(a))

        with pytest.raises(GeolocationError):
            await resolver.resolve({"cell_towers": {"mcc": 404}})

        assert calls == []

    def test_token_from_settings(self):
        resolver = GeolocationResolver()

        assert resolver.api_token == "test-geo-token"
        assert resolver.api_url == "https://unwiredlabs.com/v2/process.php"
