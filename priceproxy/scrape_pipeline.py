"""
Scrape Pipeline

Drives one price lookup end to end: search results navigation, exact-match
lowest-price product selection, then per-condition product page navigation
and listing extraction. Every failure is captured here and turned into a
structured LookupResult.
"""

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from .browser_session_manager import BrowserSessionManager
from .config import (
    DEBUG_SCREENSHOT_DIR,
    DEBUG_SCREENSHOTS,
    LISTING_TIMEOUT_SECONDS,
    MAX_CONDITIONS,
    PLAYWRIGHT_NAVIGATION_TIMEOUT_MS,
    POLL_INTERVAL_SECONDS,
    POLL_MAX_INTERVAL_SECONDS,
    SEARCH_RESULTS_TIMEOUT_SECONDS,
)
from .exceptions import ExtractionError, NavigationFailure, NoListingFound, NoMatchFound, RateLimited
from .legality import LegalityChecker
from .models import (
    DEFAULT_CONDITIONS,
    BrowsingSession,
    Condition,
    ConditionListing,
    ConditionPrice,
    Legality,
    LookupRequest,
    LookupResult,
    ProductCandidate,
)
from .price_normalizer import parse_price, shipping_cents
from .rate_limit_guard import RateLimitGuard
from .scripts import LISTINGS_SCRIPT, SEARCH_RESULTS_SCRIPT
from .utils.helpers import (
    build_condition_url,
    build_search_url,
    is_exact_card_match,
    is_playable_title,
)
from .utils.polling import wait_for

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    SEARCH_NAVIGATE = "search_navigate"
    CANDIDATE_SELECT = "candidate_select"
    CONDITION_LOOP = "condition_loop"
    AGGREGATE = "aggregate"
    DONE = "done"
    FAILED = "failed"


def parse_candidates(raw_products: Optional[Iterable[Dict[str, Any]]]) -> List[ProductCandidate]:
    """Turn raw search tiles into ProductCandidates, skipping unusable ones."""
    candidates = []
    for product in raw_products or []:
        if not isinstance(product, dict):
            continue

        title = (product.get('title') or '').strip()
        url = product.get('url')
        if not title or not url:
            logger.debug(f"Skipping search tile without title or link: {product}")
            continue

        candidates.append(ProductCandidate(
            title=title,
            price_cents=parse_price(product.get('price')),
            product_url=url,
            set_variant=product.get('setVariant') or '',
            rarity=product.get('rarity') or '',
        ))
    return candidates


def select_best_candidate(candidates: Sequence[ProductCandidate], card_name: str) -> Optional[ProductCandidate]:
    """
    Pick the cheapest playable product whose title is the requested card.

    Ties keep the first candidate encountered.
    """
    matches = []
    for candidate in candidates:
        if not is_playable_title(candidate.title, candidate.set_variant, candidate.rarity):
            logger.debug(f"Skipping non-playable product: {candidate.title}")
            continue
        if candidate.price_cents <= 0:
            logger.debug(f"Skipping product without a valid price: {candidate.title}")
            continue
        if not is_exact_card_match(card_name, candidate.title):
            continue
        matches.append(candidate)

    if not matches:
        return None

    return min(matches, key=lambda candidate: candidate.price_cents)


class ScrapePipeline:
    """Runs the search → select → per-condition extraction state machine."""

    def __init__(
        self,
        session_manager: BrowserSessionManager,
        rate_limit_guard: RateLimitGuard,
        legality_checker: Optional[LegalityChecker] = None,
        conditions: Sequence[Condition] = DEFAULT_CONDITIONS,
        max_conditions: int = MAX_CONDITIONS,
        search_timeout: float = SEARCH_RESULTS_TIMEOUT_SECONDS,
        listing_timeout: float = LISTING_TIMEOUT_SECONDS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        poll_max_interval: float = POLL_MAX_INTERVAL_SECONDS,
        debug_screenshots: bool = DEBUG_SCREENSHOTS,
        screenshot_dir: str = DEBUG_SCREENSHOT_DIR,
    ):
        self.session_manager = session_manager
        self.rate_limit_guard = rate_limit_guard
        self.legality_checker = legality_checker
        self.conditions = tuple(conditions)
        self.max_conditions = max_conditions
        self.search_timeout = search_timeout
        self.listing_timeout = listing_timeout
        self.poll_interval = poll_interval
        self.poll_max_interval = poll_max_interval
        self.debug_screenshots = debug_screenshots
        self.screenshot_dir = Path(screenshot_dir)

    def _transition(self, request: LookupRequest, state: PipelineState) -> PipelineState:
        logger.info(f"Request {request.request_id}: {request.card_name} -> {state.value}")
        return state

    def _fail(
        self,
        request: LookupRequest,
        error: str,
        error_code: str,
        legality: Legality,
    ) -> LookupResult:
        self._transition(request, PipelineState.FAILED)
        logger.error(f"Request {request.request_id}: {error}")
        return LookupResult.failure(
            card_name=request.card_name,
            error=error,
            error_code=error_code,
            legality=legality,
            request_id=request.request_id,
        )

    async def run(self, request: LookupRequest) -> LookupResult:
        """
        Execute one lookup.

        Never raises: every outcome, including unexpected errors, comes back
        as a LookupResult.
        """
        legality = await self._check_legality(request)
        if legality is Legality.NOT_LEGAL:
            logger.info(f"Request {request.request_id}: Card {request.card_name} is not legal in any format")
            return self._fail(request, "Card is not legal in any format", "not_legal", legality)

        try:
            async with self.session_manager.session(request.request_id) as session:
                page = await self.session_manager.new_page(session)
                return await self._scrape(request, session, page, legality)
        except PlaywrightError as e:
            logger.error(f"Request {request.request_id}: Browser error: {e}", exc_info=True)
            return self._fail(request, f"Browser error: {e}", "navigation_failed", legality)
        except Exception as e:
            logger.error(f"Request {request.request_id}: Error handling request: {e}", exc_info=True)
            return self._fail(request, f"Error processing request: {e}", "internal_error", legality)

    async def _check_legality(self, request: LookupRequest) -> Legality:
        if self.legality_checker is None:
            return Legality.UNKNOWN
        return await self.legality_checker.check(request.card_name, request.request_id)

    async def _scrape(
        self,
        request: LookupRequest,
        session: BrowsingSession,
        page,
        legality: Legality,
    ) -> LookupResult:
        request_id = request.request_id

        self._transition(request, PipelineState.SEARCH_NAVIGATE)
        search_url = build_search_url(request.card_name)
        logger.info(f"Request {request_id}: Searching TCGPlayer: {search_url}")
        try:
            await self._navigate(page, session, search_url, request_id, wait_until='networkidle')
        except (NavigationFailure, RateLimited) as e:
            return self._fail(request, f"Failed to load search results: {e.message}", "navigation_failed", legality)

        self._transition(request, PipelineState.CANDIDATE_SELECT)
        try:
            candidate = await self._select_candidate(page, request)
        except NoMatchFound as e:
            return self._fail(request, e.message, "no_product", legality)

        logger.info(
            f"Request {request_id}: Found lowest priced product: {candidate.title} "
            f"at {candidate.price_cents / 100:.2f} ({candidate.product_url})"
        )

        self._transition(request, PipelineState.CONDITION_LOOP)
        listings = await self._collect_listings(page, session, candidate, request_id)

        self._transition(request, PipelineState.AGGREGATE)
        if not listings:
            return self._fail(request, "No valid prices found for any condition", "no_prices", legality)

        prices = {
            listing.condition.value: ConditionPrice(price=listing.display_price, url=listing.listing_url)
            for listing in listings
        }
        self._transition(request, PipelineState.DONE)
        summary = ", ".join(f"{condition}: {price.price}" for condition, price in prices.items())
        logger.info(f"Request {request_id}: Prices for {request.card_name}: {summary}")

        return LookupResult(
            success=True,
            card_name=request.card_name,
            prices=prices,
            legality=legality,
            request_id=request_id,
        )

    async def _navigate(
        self,
        page,
        session: BrowsingSession,
        url: str,
        request_id: str,
        wait_until: str = 'domcontentloaded',
    ) -> None:
        """
        Load a URL, giving the rate-limit guard one chance to recover.

        Raises:
            NavigationFailure: The page could not be loaded, even after a
                rate-limit recovery and retry.
            RateLimited: The page was still blocked after recovering.
        """
        recovered = False
        while True:
            error = None
            try:
                await page.goto(url, wait_until=wait_until, timeout=PLAYWRIGHT_NAVIGATION_TIMEOUT_MS)
            except PlaywrightError as e:
                error = e
                logger.warning(f"Request {request_id}: Navigation to {url} failed: {e}")
            self.session_manager.touch(session)

            if not recovered:
                recovered = await self.rate_limit_guard.check_and_recover(page, request_id)
                if recovered:
                    logger.info(f"Request {request_id}: Retrying navigation after rate limit recovery")
                    continue

            if error is not None:
                raise NavigationFailure(str(error), request_id=request_id, url=url) from error
            if recovered and await self.rate_limit_guard.is_blocked(page, request_id):
                raise RateLimited("Still blocked after rate limit recovery", request_id=request_id, url=url)
            return

    async def _extract_search_results(self, page, request_id: str) -> Optional[List[Dict[str, Any]]]:
        try:
            products = await page.evaluate(SEARCH_RESULTS_SCRIPT)
        except PlaywrightError as e:
            logger.debug(f"Request {request_id}: Search results not readable yet: {e}")
            return None
        return products if isinstance(products, list) and products else None

    async def _select_candidate(self, page, request: LookupRequest) -> ProductCandidate:
        request_id = request.request_id
        logger.info(f"Request {request_id}: Waiting for search results to load for '{request.card_name}'...")

        raw_products = await wait_for(
            lambda: self._extract_search_results(page, request_id),
            timeout=self.search_timeout,
            interval=self.poll_interval,
            max_interval=self.poll_max_interval,
            description="search results",
        )
        if not raw_products:
            await self._capture_debug_screenshot(page, "search_results_timeout", request_id)
            raise NoMatchFound("No valid products found", request_id=request_id, url=page.url)

        candidates = parse_candidates(raw_products)
        logger.info(f"Request {request_id}: Found {len(candidates)} search results")

        candidate = select_best_candidate(candidates, request.card_name)
        if candidate is None:
            raise NoMatchFound(
                "No valid products found",
                request_id=request_id,
                url=page.url,
                details={"titles": [c.title for c in candidates[:10]]},
            )
        return candidate

    async def _collect_listings(
        self,
        page,
        session: BrowsingSession,
        candidate: ProductCandidate,
        request_id: str,
    ) -> List[ConditionListing]:
        listings: List[ConditionListing] = []

        for condition in self.conditions:
            if len(listings) >= self.max_conditions:
                break

            logger.info(f"Request {request_id}: Processing condition: {condition.value}")
            try:
                listing = await self._process_condition(page, session, candidate, condition, request_id)
            except NoListingFound as e:
                logger.info(f"Request {request_id}: No {condition.value} listing: {e.message}")
                continue
            except (NavigationFailure, RateLimited) as e:
                logger.warning(f"Request {request_id}: Skipping {condition.value}: {e}")
                continue
            except ExtractionError as e:
                logger.error(f"Request {request_id}: Unexpected listing markup for {condition.value}: {e.to_dict()}")
                continue

            logger.info(
                f"Request {request_id}: {condition.value} listing: base={listing.base_price_cents} "
                f"shipping={listing.shipping_cents} total={listing.display_price}"
            )
            listings.append(listing)

        return listings

    async def _extract_listings(self, page, request_id: str) -> Optional[Dict[str, Any]]:
        try:
            payload = await page.evaluate(LISTINGS_SCRIPT)
        except PlaywrightError as e:
            logger.debug(f"Request {request_id}: Listings not readable yet: {e}")
            return None

        if isinstance(payload, dict) and payload.get('listings'):
            return payload
        return None

    async def _process_condition(
        self,
        page,
        session: BrowsingSession,
        candidate: ProductCandidate,
        condition: Condition,
        request_id: str,
    ) -> ConditionListing:
        filtered_url = build_condition_url(candidate.product_url, condition.value)
        logger.info(f"Request {request_id}: Navigating to filtered URL: {filtered_url}")
        await self._navigate(page, session, filtered_url, request_id)

        payload = await wait_for(
            lambda: self._extract_listings(page, request_id),
            timeout=self.listing_timeout,
            interval=self.poll_interval,
            max_interval=self.poll_max_interval,
            description=f"{condition.value} listings",
        )
        self.session_manager.touch(session)

        if not payload:
            await self._capture_debug_screenshot(page, f"no_listing_{condition.name.lower()}", request_id)
            raise NoListingFound(
                f"No listing rendered within {self.listing_timeout}s",
                request_id=request_id,
                url=filtered_url,
            )

        return self._build_listing(condition, payload, filtered_url, request_id)

    def _build_listing(
        self,
        condition: Condition,
        payload: Dict[str, Any],
        fallback_url: str,
        request_id: str,
    ) -> ConditionListing:
        first = payload['listings'][0]
        base_price = first.get('basePrice') if isinstance(first, dict) else None
        base_text = base_price.get('text') if isinstance(base_price, dict) else None

        base_cents = parse_price(base_text)
        if base_cents <= 0:
            raise ExtractionError(
                "First listing has no readable base price",
                request_id=request_id,
                url=payload.get('url') or fallback_url,
                details={"listing": first, "header": payload.get('headerText')},
            )

        return ConditionListing(
            condition=condition,
            base_price_cents=base_cents,
            shipping_cents=shipping_cents(first),
            listing_url=payload.get('url') or fallback_url,
        )

    async def _capture_debug_screenshot(self, page, label: str, request_id: str) -> Optional[Path]:
        """Save a full-page screenshot when debug screenshots are enabled."""
        if not self.debug_screenshots:
            return None

        path = self.screenshot_dir / f"{label}_{request_id}_{int(time.time())}.png"
        try:
            self.screenshot_dir.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
        except (PlaywrightError, OSError) as e:
            logger.error(f"Request {request_id}: Error taking screenshot: {e}")
            return None

        logger.info(f"Request {request_id}: Saved screenshot to {path}")
        return path
