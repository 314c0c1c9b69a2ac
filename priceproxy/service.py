"""
Price Service

Wires the browser session manager, rate-limit guard, legality checker, scrape
pipeline and request coordinator together and owns their lifecycle.
"""

import logging
from typing import Any, Dict, Optional

from .browser_session_manager import BrowserSessionManager
from .legality import LegalityChecker
from .models import LookupResult
from .rate_limit_guard import RateLimitGuard
from .request_coordinator import RequestCoordinator
from .scrape_pipeline import ScrapePipeline

logger = logging.getLogger(__name__)


class PriceService:
    """Facade used by the HTTP layer."""

    def __init__(
        self,
        session_manager: Optional[BrowserSessionManager] = None,
        rate_limit_guard: Optional[RateLimitGuard] = None,
        legality_checker: Optional[LegalityChecker] = None,
        pipeline: Optional[ScrapePipeline] = None,
        coordinator: Optional[RequestCoordinator] = None,
    ):
        self.session_manager = session_manager or BrowserSessionManager()
        self.rate_limit_guard = rate_limit_guard or RateLimitGuard()
        self.legality_checker = legality_checker or LegalityChecker()
        self.pipeline = pipeline or ScrapePipeline(
            self.session_manager,
            self.rate_limit_guard,
            legality_checker=self.legality_checker,
        )
        self.coordinator = coordinator or RequestCoordinator(self.pipeline)
        self._started = False

    async def start(self) -> None:
        """Start background maintenance. The browser itself launches on first use."""
        if self._started:
            return
        self.session_manager.start()
        self.coordinator.start()
        self._started = True
        logger.info("Price service started")

    async def shutdown(self) -> None:
        logger.info("Shutting down price service...")
        await self.coordinator.stop()
        await self.session_manager.shutdown()
        await self.legality_checker.close()
        self._started = False
        logger.info("Price service shut down")

    async def get_card_info(self, card_name: Optional[str]) -> LookupResult:
        return await self.coordinator.resolve(card_name)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self._started,
            "browser": self.session_manager.get_stats(),
            "cache": self.coordinator.get_stats(),
            "rate_limit_detections": self.rate_limit_guard.detections,
        }
