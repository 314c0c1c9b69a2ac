"""
Data models for the price proxy

Pydantic models for lookup requests, scraped products and listings, cached
results and the API response payload.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .price_normalizer import format_total


def generate_request_id() -> str:
    """Short opaque token used to tag log lines and sessions for one lookup."""
    return uuid.uuid4().hex[:12]


class Condition(str, Enum):
    """Physical grade of a card listing, using TCGplayer's filter values."""

    NEAR_MINT = "Near Mint"
    LIGHTLY_PLAYED = "Lightly Played"
    MODERATELY_PLAYED = "Moderately Played"
    HEAVILY_PLAYED = "Heavily Played"


DEFAULT_CONDITIONS = (
    Condition.NEAR_MINT,
    Condition.LIGHTLY_PLAYED,
    Condition.MODERATELY_PLAYED,
    Condition.HEAVILY_PLAYED,
)


class Legality(str, Enum):
    """Whether a card is legal in at least one format."""

    LEGAL = "legal"
    NOT_LEGAL = "not_legal"
    UNKNOWN = "unknown"


class CacheStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"


class LookupRequest(BaseModel):
    """One external price lookup."""

    model_config = ConfigDict(frozen=True)

    card_name: str = Field(..., description="Card name as requested")
    request_id: str = Field(default_factory=generate_request_id)


class ProductCandidate(BaseModel):
    """A product tile parsed from the search results page."""

    title: str
    price_cents: int = Field(..., ge=0)
    product_url: str
    set_variant: str = ""
    rarity: str = ""


class ConditionListing(BaseModel):
    """The cheapest listing found for one condition of a product."""

    condition: Condition
    base_price_cents: int = Field(..., ge=0)
    shipping_cents: int = Field(0, ge=0)
    listing_url: str

    @property
    def total_cents(self) -> int:
        return self.base_price_cents + self.shipping_cents

    @property
    def display_price(self) -> str:
        return format_total(self.base_price_cents, self.shipping_cents)


class ConditionPrice(BaseModel):
    """API shape of one condition's price."""

    price: str = Field(..., description="Total price including shipping, e.g. '$17.28'")
    url: str = Field(..., description="Filtered product page the price came from")


class LookupResult(BaseModel):
    """Outcome of one lookup, success or failure."""

    success: bool
    card_name: str
    prices: Dict[str, ConditionPrice] = Field(default_factory=dict)
    legality: Legality = Legality.UNKNOWN
    error: Optional[str] = None
    error_code: Optional[str] = None
    cached: bool = False
    request_id: Optional[str] = None

    @classmethod
    def failure(
        cls,
        card_name: str,
        error: str,
        error_code: str,
        legality: Legality = Legality.UNKNOWN,
        request_id: Optional[str] = None,
        prices: Optional[Dict[str, ConditionPrice]] = None,
    ) -> "LookupResult":
        return cls(
            success=False,
            card_name=card_name,
            error=error,
            error_code=error_code,
            legality=legality,
            request_id=request_id,
            prices=prices or {},
        )

    def to_response(self) -> Dict[str, Any]:
        """Build the JSON body returned by the card info endpoint."""
        prices = {condition: price.model_dump() for condition, price in self.prices.items()}
        if self.success:
            return {
                "card_name": self.card_name,
                "prices": prices,
                "legality": self.legality.value,
                "cached": self.cached,
            }
        return {
            "error": self.error,
            "legality": self.legality.value,
            "prices": prices,
        }


class CachedResult(BaseModel):
    """Entry in the request coordinator's cache table."""

    card_name: str
    status: CacheStatus
    payload: Optional[LookupResult] = None
    inserted_at: float
    request_id: str


@dataclass
class BrowsingSession:
    """
    An isolated browser context owned by one lookup request.

    Holds live Playwright handles, so it is a plain dataclass rather than a
    pydantic model.
    """

    request_id: str
    context: Any
    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = 0.0
    pages: List[Any] = field(default_factory=list)

    def __post_init__(self):
        if not self.last_activity:
            self.last_activity = self.created_at

    def touch(self, now: float) -> None:
        self.last_activity = now

    def idle_seconds(self, now: float) -> float:
        return now - self.last_activity
