"""
Browser Session Manager for Playwright

Owns the single shared Chromium process and hands out one isolated browser
context per lookup request. Every context and page is configured the same
way, sessions are tracked per request id, and a background reaper closes
sessions that went idle for too long, whether or not they were released.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import Any, Callable, Dict, List, Optional, Tuple

import psutil
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .config import (
    BLOCKED_PAGE_PATTERN,
    BROWSER_LAUNCH_ARGS,
    BROWSER_LOCALE,
    BROWSER_TIMEZONE,
    BROWSER_USER_AGENT,
    BROWSER_VIEWPORT,
    PLAYWRIGHT_HEADLESS,
    PLAYWRIGHT_NAVIGATION_TIMEOUT_MS,
    PLAYWRIGHT_PAGE_TIMEOUT_MS,
    SESSION_REAP_INTERVAL_SECONDS,
    SESSION_STALE_SECONDS,
    TCGPLAYER_HEADERS,
)
from .models import BrowsingSession
from .scripts import REDIRECT_PREVENTION_SCRIPT_TEMPLATE

logger = logging.getLogger(__name__)


class PageObservers:
    """Handle for the event listeners attached to a page."""

    def __init__(self, page, handlers: List[Tuple[str, Callable[..., Any]]]):
        self.page = page
        self._handlers = handlers

    def detach(self) -> None:
        """Remove every listener registered through this handle."""
        for event, handler in self._handlers:
            with suppress(Exception):
                self.page.remove_listener(event, handler)
        self._handlers = []


def attach_page_observers(page, request_id: str, on_close: Optional[Callable[[Any], None]] = None) -> PageObservers:
    """Forward browser console output and page errors to the logger."""

    def on_console(message):
        logger.debug(f"Request {request_id}: (Browser Console) {message.text}")

    def on_page_error(error):
        logger.error(f"Request {request_id}: (Browser Error) {error}")

    handlers = [('console', on_console), ('pageerror', on_page_error)]
    if on_close is not None:
        handlers.append(('close', on_close))

    for event, handler in handlers:
        page.on(event, handler)

    return PageObservers(page, handlers)


class BrowserSessionManager:
    """
    Shared browser with per-request isolated contexts.

    The browser is launched lazily on first use and relaunched transparently
    when it is found disconnected.
    """

    def __init__(
        self,
        headless: bool = PLAYWRIGHT_HEADLESS,
        stale_after_seconds: float = SESSION_STALE_SECONDS,
        reap_interval_seconds: float = SESSION_REAP_INTERVAL_SECONDS,
        blocked_pattern: str = BLOCKED_PAGE_PATTERN,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.headless = headless
        self.stale_after_seconds = stale_after_seconds
        self.reap_interval_seconds = reap_interval_seconds
        self.blocked_pattern = blocked_pattern
        self._clock = clock

        self._playwright = None
        self._browser = None
        self._browser_lock = asyncio.Lock()

        self._sessions: Dict[str, BrowsingSession] = {}
        self._lock = asyncio.Lock()
        self._reaper_task: Optional[asyncio.Task] = None

        self.launch_count = 0
        self.reaped_count = 0

        logger.info(
            f"BrowserSessionManager configured with headless={headless}, "
            f"stale_after={stale_after_seconds}s, reap_interval={reap_interval_seconds}s"
        )

    # Browser lifecycle

    async def _launch_browser(self):
        """Launch Chromium with the stealth settings used for every session."""
        if self._playwright is None:
            self._playwright = await async_playwright().start()

        browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=BROWSER_LAUNCH_ARGS,
            ignore_default_args=['--enable-automation'],
        )
        self.launch_count += 1
        logger.info(f"Browser launched (launch #{self.launch_count}, headless={self.headless})")
        return browser

    async def _teardown_browser(self) -> None:
        """Forget every session of the current browser and stop it."""
        async with self._lock:
            orphaned = list(self._sessions.values())
            self._sessions.clear()

        if orphaned:
            logger.warning(f"Dropping {len(orphaned)} session(s) from the disconnected browser")

        browser, self._browser = self._browser, None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing disconnected browser: {e}")

        playwright, self._playwright = self._playwright, None
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.debug(f"Error stopping playwright: {e}")

    async def _ensure_browser(self):
        """Return a connected browser, launching or relaunching as needed."""
        async with self._browser_lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            if self._browser is not None:
                logger.error("Browser disconnected, creating new one")
                await self._teardown_browser()

            self._browser = await self._launch_browser()
            return self._browser

    # Sessions

    async def acquire_session(self, request_id: str) -> BrowsingSession:
        """Create and track an isolated browser context for a request."""
        browser = await self._ensure_browser()

        context = await browser.new_context(
            viewport=BROWSER_VIEWPORT,
            user_agent=BROWSER_USER_AGENT,
            locale=BROWSER_LOCALE,
            timezone_id=BROWSER_TIMEZONE,
            extra_http_headers=TCGPLAYER_HEADERS,
        )
        context.set_default_timeout(PLAYWRIGHT_PAGE_TIMEOUT_MS)
        context.set_default_navigation_timeout(PLAYWRIGHT_NAVIGATION_TIMEOUT_MS)
        await context.add_init_script(
            script=REDIRECT_PREVENTION_SCRIPT_TEMPLATE % {'pattern': json.dumps(self.blocked_pattern)}
        )

        now = self._clock()
        session = BrowsingSession(request_id=request_id, context=context, created_at=now, last_activity=now)

        async with self._lock:
            previous = self._sessions.pop(request_id, None)
            self._sessions[request_id] = session

        if previous is not None:
            logger.warning(f"Request {request_id}: Replacing an existing session")
            await self._close_session(previous)

        logger.info(f"Request {request_id}: Browser context created")
        return session

    async def new_page(self, session: BrowsingSession):
        """Open a configured page inside a session."""
        page = await session.context.new_page()
        await self.configure_page(page, session)
        session.pages.append(page)
        session.touch(self._clock())
        logger.debug(f"Request {session.request_id}: New page created in context")
        return page

    async def configure_page(self, page, session: BrowsingSession) -> PageObservers:
        """
        Apply timeouts, request filtering and event observers to a page.

        The request filter aborts sub-frame requests and any navigation to the
        blocked page, and lets everything else (other redirects included)
        through.
        """
        request_id = session.request_id
        page.set_default_timeout(PLAYWRIGHT_PAGE_TIMEOUT_MS)
        page.set_default_navigation_timeout(PLAYWRIGHT_NAVIGATION_TIMEOUT_MS)

        async def handle_route(route):
            await self._route_request(route, request_id)

        await page.route("**/*", handle_route)

        def on_close(closed_page):
            if closed_page in session.pages:
                session.pages.remove(closed_page)

        return attach_page_observers(page, request_id, on_close=on_close)

    def should_block_request(self, request) -> Tuple[bool, str]:
        """Decide whether a request is aborted by the page request filter."""
        try:
            parent_frame = request.frame.parent_frame
        except PlaywrightError:
            # Service worker requests have no frame
            parent_frame = None

        if parent_frame is not None:
            return True, "iframe request"

        if request.is_navigation_request() and self.blocked_pattern in request.url:
            return True, "navigation to error page"

        return False, ""

    async def _route_request(self, route, request_id: str) -> None:
        request = route.request
        blocked, reason = self.should_block_request(request)
        try:
            if blocked:
                logger.info(f"Request {request_id}: Blocking {reason}: {request.url}")
                await route.abort()
            else:
                await route.continue_()
        except PlaywrightError as e:
            # The page may have been closed while the request was in flight
            logger.debug(f"Request {request_id}: Route handling failed for {request.url}: {e}")

    def touch(self, session: BrowsingSession) -> None:
        """Record activity so the reaper does not treat the session as idle."""
        session.touch(self._clock())

    async def _close_session(self, session: BrowsingSession) -> None:
        for page in list(session.pages):
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug(f"Request {session.request_id}: Page cleanup error: {e}")
        session.pages.clear()

        try:
            await session.context.close()
        except PlaywrightError as e:
            logger.debug(f"Request {session.request_id}: Context cleanup error: {e}")

    async def release(self, request_id: str) -> bool:
        """Close a request's pages and context and stop tracking it."""
        async with self._lock:
            session = self._sessions.pop(request_id, None)

        if session is None:
            return False

        await self._close_session(session)
        logger.info(f"Request {request_id}: Closed browser context and pages")
        return True

    @asynccontextmanager
    async def session(self, request_id: str):
        """Acquire a session for the duration of a block, always releasing it."""
        browsing_session = await self.acquire_session(request_id)
        try:
            yield browsing_session
        finally:
            await self.release(request_id)

    async def reap_stale(self, now: Optional[float] = None) -> int:
        """
        Force-close every session idle for longer than the staleness ceiling.

        Returns:
            int: Number of sessions closed
        """
        now = self._clock() if now is None else now

        async with self._lock:
            stale = [
                session for session in self._sessions.values()
                if session.idle_seconds(now) > self.stale_after_seconds
            ]
            for session in stale:
                del self._sessions[session.request_id]

        for session in stale:
            logger.warning(
                f"Request {session.request_id}: Reaping stale session "
                f"(idle {session.idle_seconds(now):.0f}s)"
            )
            await self._close_session(session)

        self.reaped_count += len(stale)
        return len(stale)

    async def _reap_loop(self) -> None:
        while True:
            await asyncio.sleep(self.reap_interval_seconds)
            try:
                await self.reap_stale()
            except Exception as e:
                logger.error(f"Error reaping stale sessions: {e}", exc_info=True)

    def start(self) -> None:
        """Start the background reaper."""
        if self._reaper_task is None or self._reaper_task.done():
            self._reaper_task = asyncio.create_task(self._reap_loop())
            logger.info("Stale session reaper started")

    async def stop(self) -> None:
        """Stop the background reaper."""
        task, self._reaper_task = self._reaper_task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    async def shutdown(self) -> None:
        """Close every session, the browser and Playwright."""
        await self.stop()

        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            await self._close_session(session)

        async with self._browser_lock:
            await self._teardown_browser()

        logger.info("Browser session manager shut down")

    # Stats

    def active_session_ids(self) -> List[str]:
        return list(self._sessions.keys())

    def _get_total_memory_usage_mb(self) -> int:
        """Memory of this process plus its browser child processes."""
        try:
            current_process = psutil.Process()
            total_mb = current_process.memory_info().rss / 1024 / 1024
            for child in current_process.children(recursive=True):
                try:
                    total_mb += child.memory_info().rss / 1024 / 1024
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    pass
            return int(total_mb)
        except psutil.Error as e:
            logger.error(f"Error calculating total memory: {e}")
            return 0

    def get_stats(self) -> Dict[str, Any]:
        """Session and browser statistics for the health endpoint."""
        sessions = list(self._sessions.values())
        return {
            "browser_running": self._browser is not None,
            "browser_connected": bool(self._browser is not None and self._browser.is_connected()),
            "launch_count": self.launch_count,
            "active_sessions": len(sessions),
            "open_pages": sum(len(session.pages) for session in sessions),
            "reaped_sessions": self.reaped_count,
            "stale_after_seconds": self.stale_after_seconds,
            "total_memory_usage_mb": self._get_total_memory_usage_mb(),
        }
