"""
Test configuration and fixtures for the card price proxy tests.

Provides fake Playwright objects, a fake target site, and a controllable
clock so the browser session manager, scrape pipeline and request
coordinator can be exercised without a browser or network access.
"""

import os

# CRITICAL: Set test environment variables BEFORE any other imports
# so the config module picks them up when it is first imported
os.environ.update({
    "DEBUG": "false",
    "LOG_LEVEL": "WARNING",
    "LOG_FILE": "",
    "PLAYWRIGHT_HEADLESS": "true",
    "DEBUG_SCREENSHOTS": "false",
    "CORS_ALLOW_ORIGINS": "*",
})

import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, os.path.dirname(__file__))

from priceproxy.browser_session_manager import BrowserSessionManager
from priceproxy.models import Legality
from priceproxy.rate_limit_guard import RateLimitGuard
from priceproxy.scrape_pipeline import ScrapePipeline
from tests.fixtures.fake_browser import FakePlaywright, FakePlaywrightStarter, FakeSite


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_site():
    return FakeSite()


@pytest.fixture
def fake_playwright(fake_site, monkeypatch):
    """Patch async_playwright so the session manager launches fake browsers."""
    playwright = FakePlaywright(fake_site)
    starter = FakePlaywrightStarter(playwright)
    monkeypatch.setattr(
        "priceproxy.browser_session_manager.async_playwright",
        lambda: starter,
    )
    return playwright


@pytest.fixture
def session_manager(fake_playwright, clock):
    return BrowserSessionManager(headless=True, clock=clock)


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def rate_limit_guard(no_sleep):
    return RateLimitGuard(sleep=no_sleep)


@pytest.fixture
def legality_checker():
    checker = MagicMock()
    checker.check = AsyncMock(return_value=Legality.LEGAL)
    checker.close = AsyncMock()
    return checker


@pytest.fixture
def pipeline(session_manager, rate_limit_guard, legality_checker):
    """Scrape pipeline over the fake site with short polling budgets."""
    return ScrapePipeline(
        session_manager,
        rate_limit_guard,
        legality_checker=legality_checker,
        search_timeout=0.05,
        listing_timeout=0.05,
        poll_interval=0.01,
        poll_max_interval=0.01,
    )
