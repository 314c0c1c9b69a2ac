"""
Rate-Limit Guard

Inspects a freshly navigated page for TCGplayer's block and rate-limit
signals and, when one is found, backs off for a randomized interval and
reloads the page so the caller can retry its navigation once.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional

from playwright.async_api import Error as PlaywrightError

from .config import (
    BLOCKED_PAGE_PATTERN,
    PLAYWRIGHT_NAVIGATION_TIMEOUT_MS,
    RATE_LIMIT_BACKOFF_MAX,
    RATE_LIMIT_BACKOFF_MIN,
)
from .exceptions import NavigationFailure
from .scripts import RATE_LIMIT_CHECK_SCRIPT

logger = logging.getLogger(__name__)


class RateLimitGuard:
    """Detects block pages and recovers with backoff plus reload."""

    def __init__(
        self,
        backoff_min: float = RATE_LIMIT_BACKOFF_MIN,
        backoff_max: float = RATE_LIMIT_BACKOFF_MAX,
        blocked_pattern: str = BLOCKED_PAGE_PATTERN,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.blocked_pattern = blocked_pattern
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.detections = 0

    async def _probe(self, page, request_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Run the detection script; None when the page could not be inspected."""
        try:
            return await page.evaluate(RATE_LIMIT_CHECK_SCRIPT)
        except PlaywrightError as e:
            logger.error(f"Request {request_id}: Error checking rate limit: {e}")
            return None

    def is_blocked_url(self, url: Optional[str]) -> bool:
        return bool(url) and self.blocked_pattern in url

    async def _detect(self, page, request_id: Optional[str]):
        blocked_url = self.is_blocked_url(page.url)
        check = await self._probe(page, request_id)

        has_rate_limit = bool(check and check.get('hasRateLimit'))
        has_error_page = bool(check and check.get('hasErrorPage'))
        if check and self.is_blocked_url(check.get('currentUrl')):
            blocked_url = True

        return check, has_rate_limit, has_error_page, blocked_url

    async def is_blocked(self, page, request_id: Optional[str] = None) -> bool:
        """Check the page for block/rate-limit signals without recovering."""
        _, has_rate_limit, has_error_page, blocked_url = await self._detect(page, request_id)
        return has_rate_limit or has_error_page or blocked_url

    async def check_and_recover(self, page, request_id: Optional[str] = None) -> bool:
        """
        Check the page for block/rate-limit signals.

        Returns:
            bool: True when a block was detected and the page was reloaded
            after backing off (the caller should retry its navigation once),
            False when nothing was detected.

        Raises:
            NavigationFailure: The reload after backing off failed.
        """
        check, has_rate_limit, has_error_page, blocked_url = await self._detect(page, request_id)

        if not (has_rate_limit or has_error_page or blocked_url):
            return False

        self.detections += 1
        delay = self._rng.uniform(self.backoff_min, self.backoff_max)
        logger.warning(
            f"Request {request_id}: Rate limit detected (rate_limit={has_rate_limit}, "
            f"error_page={has_error_page}, blocked_url={blocked_url}), waiting {delay:.1f}s..."
        )
        if check and check.get('errorMessages'):
            logger.info(f"Request {request_id}: Error messages found: {check['errorMessages']}")

        await self._sleep(delay)

        try:
            await page.reload(wait_until='networkidle', timeout=PLAYWRIGHT_NAVIGATION_TIMEOUT_MS)
        except PlaywrightError as e:
            raise NavigationFailure(
                f"Reload after rate limit failed: {e}",
                request_id=request_id,
                url=page.url,
            ) from e

        logger.info(f"Request {request_id}: Page reloaded after rate limit backoff")
        return True
