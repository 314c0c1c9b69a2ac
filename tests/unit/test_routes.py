"""
Unit tests for the Quart app and routes.

The price service is mocked; requests go through Quart's test client.
"""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from quart import Quart

from priceproxy.app import BrowserNoiseFilter, create_app
from priceproxy.models import ConditionPrice, Legality, LookupResult
from priceproxy.routes import status_for_error


def make_service(result=None):
    service = MagicMock()
    service.get_card_info = AsyncMock(return_value=result)
    service.get_stats = MagicMock(return_value={
        "running": True,
        "browser": {"active_sessions": 0},
        "cache": {"entries": 0},
        "rate_limit_detections": 0,
    })
    service.coordinator.get_stats = MagicMock(return_value={"entries": 1, "hits": 3})
    service.start = AsyncMock()
    service.shutdown = AsyncMock()
    return service


def success_result():
    return LookupResult(
        success=True,
        card_name="Drannith Magistrate",
        prices={
            "Near Mint": ConditionPrice(price="$15.94", url="https://www.tcgplayer.com/product/1?Condition=Near+Mint"),
            "Lightly Played": ConditionPrice(price="$17.28", url="https://www.tcgplayer.com/product/1?Condition=Lightly+Played"),
        },
        legality=Legality.LEGAL,
        cached=True,
    )


class TestAppCreation:
    """Test app factory."""

    def test_create_app(self):
        app = create_app(service=make_service())

        assert isinstance(app, Quart)
        rules = {rule.rule for rule in app.url_map.iter_rules()}
        assert {"/card_info", "/health", "/cache/stats"} <= rules

    @patch("priceproxy.app.validate_config", return_value=False)
    def test_invalid_config_raises(self, mock_validate):
        with pytest.raises(RuntimeError):
            create_app(service=make_service())

    @pytest.mark.asyncio
    async def test_service_lifecycle_follows_serving(self):
        service = make_service()
        app = create_app(service=service)

        async with app.test_app():
            service.start.assert_awaited_once()

        service.shutdown.assert_awaited_once()


class TestCardInfoRoute:
    """Test the card info endpoint."""

    @pytest.mark.asyncio
    async def test_success(self):
        service = make_service(success_result())
        app = create_app(service=service)

        async with app.test_client() as client:
            response = await client.get("/card_info", query_string={"name": "Drannith Magistrate"})
            body = await response.get_json()

        assert response.status_code == 200
        assert body["card_name"] == "Drannith Magistrate"
        assert body["prices"]["Near Mint"]["price"] == "$15.94"
        assert body["prices"]["Lightly Played"]["price"] == "$17.28"
        assert body["legality"] == "legal"
        assert body["cached"] is True
        service.get_card_info.assert_awaited_once_with("Drannith Magistrate")

    @pytest.mark.asyncio
    async def test_missing_name(self):
        service = make_service()
        app = create_app(service=service)

        async with app.test_client() as client:
            response = await client.get("/card_info")
            body = await response.get_json()

        assert response.status_code == 400
        assert "name" in body["error"]
        service.get_card_info.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error_code,status", [
        ("invalid_request", 400),
        ("not_legal", 404),
        ("no_product", 404),
        ("no_prices", 404),
        ("navigation_failed", 502),
        ("internal_error", 502),
    ])
    async def test_failures_map_to_status(self, error_code, status):
        result = LookupResult.failure(
            card_name="Drannith Magistrate",
            error="No valid products found",
            error_code=error_code,
            legality=Legality.LEGAL,
        )
        app = create_app(service=make_service(result))

        async with app.test_client() as client:
            response = await client.get("/card_info", query_string={"name": "Drannith Magistrate"})
            body = await response.get_json()

        assert response.status_code == status
        assert body == {"error": "No valid products found", "legality": "legal", "prices": {}}

    @pytest.mark.asyncio
    async def test_unexpected_service_error(self):
        service = make_service()
        service.get_card_info.side_effect = RuntimeError("boom")
        app = create_app(service=service)

        async with app.test_client() as client:
            response = await client.get("/card_info", query_string={"name": "Sol Ring"})

        assert response.status_code == 500

    def test_unknown_error_code_is_bad_gateway(self):
        assert status_for_error(None) == 502


class TestStatusRoutes:
    """Test health and cache stats endpoints."""

    @pytest.mark.asyncio
    async def test_health(self):
        app = create_app(service=make_service())

        async with app.test_client() as client:
            response = await client.get("/health")
            body = await response.get_json()

        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["browser"] == {"active_sessions": 0}
        assert body["cache"] == {"entries": 0}

    @pytest.mark.asyncio
    async def test_cache_stats(self):
        app = create_app(service=make_service())

        async with app.test_client() as client:
            response = await client.get("/cache/stats")
            body = await response.get_json()

        assert response.status_code == 200
        assert body == {"success": True, "data": {"entries": 1, "hits": 3}}


class TestBrowserNoiseFilter:
    """Test log noise filtering."""

    def make_record(self, message, level=logging.WARNING):
        return logging.LogRecord("playwright", level, __file__, 1, message, None, None)

    def test_drops_harmless_driver_warnings(self):
        record = self.make_record("Page.evaluate: Target closed")

        assert BrowserNoiseFilter().filter(record) is False

    def test_trims_multiline_warnings(self):
        record = self.make_record("Navigation failed\nCall log:\n  - navigating to ...")

        assert BrowserNoiseFilter().filter(record) is True
        assert record.getMessage() == "Navigation failed"

    def test_keeps_errors_untouched(self):
        record = self.make_record("Target closed\nstack", level=logging.ERROR)

        assert BrowserNoiseFilter().filter(record) is True
        assert record.getMessage() == "Target closed\nstack"
