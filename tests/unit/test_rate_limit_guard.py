"""
Unit tests for rate_limit_guard.py module.
"""

import random
from unittest.mock import AsyncMock

import pytest
from playwright.async_api import Error as PlaywrightError

from priceproxy.exceptions import NavigationFailure
from priceproxy.rate_limit_guard import RateLimitGuard
from tests.fixtures.fake_browser import FakePage, FakeSite
from tests.fixtures.site_payloads import RATE_LIMITED


def make_page(url="https://www.tcgplayer.com/search/magic/product?q=x"):
    page = FakePage(FakeSite())
    page.url = url
    return page


class TestRateLimitGuard:
    """Test block detection and recovery."""

    @pytest.mark.asyncio
    async def test_no_block_returns_false_without_sleeping(self):
        sleep = AsyncMock()
        guard = RateLimitGuard(sleep=sleep)
        page = make_page()

        assert await guard.check_and_recover(page, "req1") is False
        sleep.assert_not_awaited()
        assert page.reload_calls == []
        assert guard.detections == 0

    @pytest.mark.asyncio
    async def test_rate_limit_element_triggers_backoff_and_reload(self):
        sleep = AsyncMock()
        guard = RateLimitGuard(backoff_min=10, backoff_max=15, sleep=sleep, rng=random.Random(7))
        page = make_page()
        page.site.rate_limit_states.append(dict(RATE_LIMITED))

        assert await guard.check_and_recover(page, "req1") is True

        sleep.assert_awaited_once()
        delay = sleep.await_args.args[0]
        assert 10 <= delay <= 15
        assert page.reload_calls[0]["wait_until"] == "networkidle"
        assert guard.detections == 1

    @pytest.mark.asyncio
    async def test_blocked_page_url_is_detected(self):
        sleep = AsyncMock()
        guard = RateLimitGuard(sleep=sleep)
        page = make_page("https://www.tcgplayer.com/uhoh")

        assert await guard.check_and_recover(page) is True
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_error_page_container_is_detected(self):
        guard = RateLimitGuard(sleep=AsyncMock())
        page = make_page()
        page.site.rate_limit_states.append({
            "hasRateLimit": False,
            "hasErrorPage": True,
            "currentUrl": page.url,
            "errorMessages": [],
        })

        assert await guard.check_and_recover(page) is True

    @pytest.mark.asyncio
    async def test_reload_failure_raises_navigation_failure(self):
        guard = RateLimitGuard(sleep=AsyncMock())
        page = make_page()
        page.site.rate_limit_states.append(dict(RATE_LIMITED))
        page.reload_error = PlaywrightError("Timeout 30000ms exceeded.")

        with pytest.raises(NavigationFailure) as exc_info:
            await guard.check_and_recover(page, "req1")

        assert exc_info.value.request_id == "req1"

    @pytest.mark.asyncio
    async def test_probe_failure_counts_as_not_detected(self):
        sleep = AsyncMock()
        guard = RateLimitGuard(sleep=sleep)
        page = make_page()
        page.closed = True

        assert await guard.check_and_recover(page) is False
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_is_blocked_only_inspects(self):
        sleep = AsyncMock()
        guard = RateLimitGuard(sleep=sleep)
        page = make_page()
        page.site.rate_limit_states.append(dict(RATE_LIMITED))

        assert await guard.is_blocked(page, "req1") is True
        assert await guard.is_blocked(page, "req1") is False
        assert await guard.is_blocked(make_page("https://www.tcgplayer.com/uhoh")) is True

        sleep.assert_not_awaited()
        assert page.reload_calls == []
        assert guard.detections == 0
