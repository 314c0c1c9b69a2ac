"""
Request Coordinator

Single entry point for price lookups. Deduplicates concurrent lookups of the
same card so only one browsing session runs per card at a time, caches
successful results for a TTL, and evicts failed and stale entries.
"""

import asyncio
import logging
import time
from collections import defaultdict
from contextlib import suppress
from typing import Any, Callable, Dict, Optional

from .config import CACHE_SWEEP_INTERVAL_SECONDS, CACHE_TTL_SECONDS, IN_PROGRESS_STALE_SECONDS
from .models import CachedResult, CacheStatus, LookupRequest, LookupResult
from .scrape_pipeline import ScrapePipeline
from .utils.helpers import normalize_card_key

logger = logging.getLogger(__name__)


class RequestCoordinator:
    """
    Cache and in-flight table in front of the scrape pipeline.

    At most one entry exists per normalized card name. A caller arriving
    while a lookup for the same card is running waits for that lookup
    instead of starting another one.
    """

    def __init__(
        self,
        pipeline: ScrapePipeline,
        cache_ttl_seconds: float = CACHE_TTL_SECONDS,
        in_progress_stale_seconds: float = IN_PROGRESS_STALE_SECONDS,
        sweep_interval_seconds: float = CACHE_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.pipeline = pipeline
        self.cache_ttl_seconds = cache_ttl_seconds
        self.in_progress_stale_seconds = in_progress_stale_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock

        self._entries: Dict[str, CachedResult] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._draining: Dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()
        self._sweeper_task: Optional[asyncio.Task] = None
        self._stats: Dict[str, int] = defaultdict(int)

    async def resolve(self, card_name: Optional[str]) -> LookupResult:
        """
        Look up prices for a card.

        Never raises for a bad name or a failed scrape: the result is either
        populated or carries an error.
        """
        display_name = " ".join((card_name or "").split())
        key = normalize_card_key(display_name)
        if not key:
            return LookupResult.failure(
                card_name=display_name,
                error="No card name provided",
                error_code="invalid_request",
            )

        try:
            while True:
                async with self._lock:
                    draining = self._draining.get(key)
                    if draining is None:
                        cached, task = self._claim(key, display_name)
                if draining is None:
                    break
                await asyncio.wait([draining])

            if cached is not None:
                return cached

            # asyncio.wait never cancels the run when this caller is cancelled
            await asyncio.wait([task])
            if task.cancelled():
                return LookupResult.failure(
                    card_name=display_name,
                    error="Lookup was abandoned after running too long",
                    error_code="internal_error",
                )
            result = task.result()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error resolving {display_name}: {e}", exc_info=True)
            return LookupResult.failure(
                card_name=display_name,
                error=f"Error processing request: {e}",
                error_code="internal_error",
            )

        return result.model_copy(deep=True)

    def _claim(self, key: str, display_name: str):
        """
        Decide how to serve a lookup. Must be called with the lock held.

        Returns:
            (cached_result, None) when a cached payload can be served, or
            (None, task) with the in-flight task to wait on.
        """
        now = self._clock()
        entry = self._entries.get(key)
        last_good: Optional[LookupResult] = None

        if entry is not None and entry.status is CacheStatus.COMPLETE:
            if now - entry.inserted_at <= self.cache_ttl_seconds:
                self._stats['hits'] += 1
                logger.info(f"Returning cached price data for {display_name}")
                return self._serve_cached(entry.payload), None
            last_good = entry.payload

        if entry is not None and entry.status is CacheStatus.IN_PROGRESS:
            task = self._inflight.get(entry.request_id)
            if entry.payload is not None:
                self._stats['stale_served'] += 1
                logger.info(f"Request {entry.request_id}: Refresh in progress for {display_name}, serving last known prices")
                return self._serve_cached(entry.payload), None
            if task is not None:
                self._stats['joined'] += 1
                logger.info(f"Request {entry.request_id}: Request already in progress for: {display_name}")
                return None, task

        self._stats['misses'] += 1
        request = LookupRequest(card_name=display_name)
        self._entries[key] = CachedResult(
            card_name=key,
            status=CacheStatus.IN_PROGRESS,
            payload=last_good,
            inserted_at=now,
            request_id=request.request_id,
        )
        task = asyncio.create_task(self._execute(key, request))
        self._inflight[request.request_id] = task
        logger.info(f"Request {request.request_id}: Marked request as in progress for: {display_name}")
        return None, task

    @staticmethod
    def _serve_cached(payload: LookupResult) -> LookupResult:
        served = payload.model_copy(deep=True)
        served.cached = True
        return served

    async def _execute(self, key: str, request: LookupRequest) -> LookupResult:
        """Run the pipeline for a claimed entry and record the outcome."""
        result: Optional[LookupResult] = None
        try:
            result = await self.pipeline.run(request)
        except Exception as e:
            logger.error(f"Request {request.request_id}: Pipeline error: {e}", exc_info=True)
            result = LookupResult.failure(
                card_name=request.card_name,
                error=f"Error processing request: {e}",
                error_code="internal_error",
                request_id=request.request_id,
            )
        finally:
            async with self._lock:
                self._record_outcome(key, request, result)
                self._inflight.pop(request.request_id, None)

        return result

    def _record_outcome(self, key: str, request: LookupRequest, result: Optional[LookupResult]) -> None:
        entry = self._entries.get(key)
        if entry is None or entry.request_id != request.request_id:
            # Swept while running, or superseded; do not resurrect it
            return

        if result is not None and result.success:
            entry.status = CacheStatus.COMPLETE
            entry.payload = result
            entry.inserted_at = self._clock()
            logger.info(f"Request {request.request_id}: Updated request status to complete for: {request.card_name}")
            return

        entry.status = CacheStatus.FAILED
        entry.payload = None
        del self._entries[key]
        self._stats['failed_evictions'] += 1
        logger.info(f"Request {request.request_id}: Lookup failed, evicted cache entry for: {request.card_name}")

    async def sweep(self, now: Optional[float] = None) -> int:
        """
        Evict stale in-progress entries and expired complete entries.

        Returns:
            int: Number of evicted entries
        """
        now = self._clock() if now is None else now
        evicted = 0
        abandoned: Dict[str, asyncio.Task] = {}

        async with self._lock:
            for key, entry in list(self._entries.items()):
                age = now - entry.inserted_at
                if entry.status is CacheStatus.IN_PROGRESS and age > self.in_progress_stale_seconds:
                    logger.warning(f"Request {entry.request_id}: Evicting stale in-progress entry for {key} ({age:.0f}s old)")
                    task = self._inflight.get(entry.request_id)
                    if task is not None and not task.done():
                        abandoned[key] = task
                        self._draining[key] = task
                elif entry.status is CacheStatus.COMPLETE and age > self.cache_ttl_seconds:
                    logger.info(f"Evicting expired price data for {key} ({age:.0f}s old)")
                else:
                    continue
                del self._entries[key]
                evicted += 1

        if abandoned:
            # Cancelling releases the run's browsing session; no new run for
            # the same card starts until the old one has unwound.
            for task in abandoned.values():
                task.cancel()
            await asyncio.wait(list(abandoned.values()))
            async with self._lock:
                for key, task in abandoned.items():
                    if self._draining.get(key) is task:
                        del self._draining[key]
            self._stats['cancelled'] += len(abandoned)

        self._stats['swept'] += evicted
        return evicted

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Error sweeping price cache: {e}", exc_info=True)

    def start(self) -> None:
        """Start the background cache sweep."""
        if self._sweeper_task is None or self._sweeper_task.done():
            self._sweeper_task = asyncio.create_task(self._sweep_loop())
            logger.info("Price cache sweeper started")

    async def stop(self) -> None:
        """Stop the background sweep and wait for in-flight lookups to finish."""
        task, self._sweeper_task = self._sweeper_task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        inflight = list(self._inflight.values())
        if inflight:
            logger.info(f"Waiting for {len(inflight)} in-flight lookup(s)")
            await asyncio.gather(*inflight, return_exceptions=True)

    def get_entry(self, card_name: str) -> Optional[CachedResult]:
        return self._entries.get(normalize_card_key(card_name))

    def get_stats(self) -> Dict[str, Any]:
        """Cache statistics for the health and stats endpoints."""
        by_status: Dict[str, int] = defaultdict(int)
        for entry in self._entries.values():
            by_status[entry.status.value] += 1

        return {
            "entries": len(self._entries),
            "in_progress": by_status[CacheStatus.IN_PROGRESS.value],
            "complete": by_status[CacheStatus.COMPLETE.value],
            "inflight_tasks": len(self._inflight),
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "in_progress_stale_seconds": self.in_progress_stale_seconds,
            **dict(self._stats),
        }
