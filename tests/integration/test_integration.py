"""
Integration tests for the price proxy.

Runs the real coordinator, pipeline, guard and session manager together
against the fake site, and the HTTP layer on top of them.
"""

import asyncio

import pytest

from priceproxy.app import create_app
from priceproxy.models import Legality
from priceproxy.service import PriceService
from tests.fixtures.site_payloads import drannith_search_results


@pytest.fixture
def price_service(session_manager, rate_limit_guard, legality_checker, pipeline):
    return PriceService(
        session_manager=session_manager,
        rate_limit_guard=rate_limit_guard,
        legality_checker=legality_checker,
        pipeline=pipeline,
    )


@pytest.mark.integration
class TestPriceServiceIntegration:
    """Test lookups through the whole service."""

    @pytest.mark.asyncio
    async def test_lookup_then_cached(self, price_service, fake_playwright):
        first = await price_service.get_card_info("Drannith Magistrate")
        second = await price_service.get_card_info("drannith magistrate")

        assert first.success and not first.cached
        assert second.cached
        assert second.prices == first.prices
        assert first.prices["Near Mint"].price == "$15.94"
        assert first.prices["Lightly Played"].price == "$17.28"
        assert first.legality is Legality.LEGAL

        browser = fake_playwright.chromium.launched[0]
        assert len(browser.contexts) == 1
        assert browser.contexts[0].closed

    @pytest.mark.asyncio
    async def test_concurrent_lookups_use_one_session(self, price_service, fake_playwright, fake_site):
        results = await asyncio.gather(
            *(price_service.get_card_info("Drannith Magistrate") for _ in range(8))
        )

        assert all(r.success for r in results)
        assert len(fake_playwright.chromium.launched[0].contexts) == 1
        assert sum("/search/" in url for url in fake_site.visited) == 1
        assert price_service.session_manager.active_session_ids() == []

    @pytest.mark.asyncio
    async def test_failed_lookup_is_retried(self, price_service, fake_site):
        fake_site.search_results = []
        failed = await price_service.get_card_info("Drannith Magistrate")
        assert failed.error_code == "no_product"

        fake_site.search_results = drannith_search_results()
        retried = await price_service.get_card_info("Drannith Magistrate")

        assert retried.success
        assert not retried.cached

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self, price_service, fake_playwright, legality_checker):
        await price_service.start()
        await price_service.get_card_info("Drannith Magistrate")
        assert price_service.get_stats()["running"] is True

        await price_service.shutdown()

        assert fake_playwright.stopped
        legality_checker.close.assert_awaited_once()
        assert price_service.get_stats()["running"] is False


@pytest.mark.integration
class TestHttpIntegration:
    """Test the HTTP API over the real service."""

    @pytest.mark.asyncio
    async def test_card_info_endpoint(self, price_service):
        app = create_app(service=price_service)

        async with app.test_client() as client:
            response = await client.get("/card_info", query_string={"name": "Drannith Magistrate"})
            body = await response.get_json()
            cached_response = await client.get("/card_info", query_string={"name": "Drannith Magistrate"})
            cached_body = await cached_response.get_json()
            stats_response = await client.get("/cache/stats")
            stats = await stats_response.get_json()

        assert response.status_code == 200
        assert body["prices"]["Near Mint"]["price"] == "$15.94"
        assert body["prices"]["Lightly Played"]["price"] == "$17.28"
        assert body["legality"] == "legal"
        assert body["cached"] is False
        assert cached_body["cached"] is True
        assert stats["data"]["hits"] == 1
        assert stats["data"]["misses"] == 1

    @pytest.mark.asyncio
    async def test_not_found_endpoint(self, price_service):
        app = create_app(service=price_service)

        async with app.test_client() as client:
            response = await client.get("/card_info", query_string={"name": "Magistrate"})
            body = await response.get_json()

        assert response.status_code == 404
        assert body["error"] == "No valid products found"
        assert body["prices"] == {}

    @pytest.mark.asyncio
    async def test_health_endpoint(self, price_service):
        app = create_app(service=price_service)

        async with app.test_client() as client:
            await client.get("/card_info", query_string={"name": "Drannith Magistrate"})
            response = await client.get("/health")
            body = await response.get_json()

        assert response.status_code == 200
        assert body["browser"]["launch_count"] == 1
        assert body["cache"]["complete"] == 1
