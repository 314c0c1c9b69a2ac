"""
Legality Checker

Looks a card up on Scryfall by exact name and reduces its per-format
legalities to legal / not_legal / unknown. Lookup problems never fail a
price request; they just produce "unknown".
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp

from .config import LEGALITY_CACHE_SECONDS, LEGALITY_TIMEOUT_SECONDS, SCRYFALL_API_BASE_URL
from .models import Legality
from .utils.helpers import normalize_card_key

logger = logging.getLogger(__name__)

LEGAL_STATUSES = ('legal', 'restricted')


def summarize_legalities(legalities: Any) -> Legality:
    """Legal when any format lists the card as legal or restricted."""
    if not isinstance(legalities, dict) or not legalities:
        return Legality.UNKNOWN

    if any(str(status).lower() in LEGAL_STATUSES for status in legalities.values()):
        return Legality.LEGAL
    return Legality.NOT_LEGAL


class LegalityChecker:
    """Async Scryfall client with a small in-process memo."""

    def __init__(
        self,
        base_url: str = SCRYFALL_API_BASE_URL,
        timeout_seconds: float = LEGALITY_TIMEOUT_SECONDS,
        cache_seconds: float = LEGALITY_CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout_seconds = timeout_seconds
        self.cache_seconds = cache_seconds
        self._clock = clock
        self._session: Optional[aiohttp.ClientSession] = None
        self._cache: Dict[str, Tuple[Legality, float]] = {}

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={
                    'User-Agent': 'priceproxy/1.0',
                    'Accept': 'application/json',
                },
            )
        return self._session

    async def _fetch_legalities(self, card_name: str, request_id: Optional[str]) -> Legality:
        url = f"{self.base_url}/cards/named"
        session = self._get_session()
        async with session.get(url, params={'exact': card_name}) as response:
            if response.status != 200:
                body = await response.text()
                logger.error(
                    f"Request {request_id}: Scryfall API error: {response.status} - {body[:200]}"
                )
                return Legality.UNKNOWN

            data = await response.json(content_type=None)
            return summarize_legalities(data.get('legalities') if isinstance(data, dict) else None)

    async def check(self, card_name: str, request_id: Optional[str] = None) -> Legality:
        """
        Look up a card's legality.

        Returns:
            Legality: LEGAL, NOT_LEGAL, or UNKNOWN on any network or parse
            failure
        """
        key = normalize_card_key(card_name)
        cached = self._cache.get(key)
        if cached and self._clock() - cached[1] < self.cache_seconds:
            return cached[0]

        logger.info(f"Request {request_id}: Checking legality with Scryfall")
        try:
            legality = await self._fetch_legalities(card_name, request_id)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Request {request_id}: Error checking legality: {e}")
            return Legality.UNKNOWN

        if legality is not Legality.UNKNOWN:
            self._cache[key] = (legality, self._clock())

        logger.info(f"Request {request_id}: Legality for {card_name}: {legality.value}")
        return legality

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
