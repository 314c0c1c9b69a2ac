"""
Price Normalizer

Pure functions turning scraped price and shipping text into integer cents and
canonical "$X.XX" display strings.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Mapping, Optional, Union

_NON_PRICE_CHARS = re.compile(r'[^0-9.]')
_FREE_SHIPPING_MARKERS = ('free', 'included')

PriceValue = Union[int, str, None]


def parse_price(text: Optional[str]) -> int:
    """
    Convert price text such as "$17.28" or "1,234.50" to integer cents.

    Everything except digits and the decimal point is dropped before parsing.
    Malformed or empty input yields 0; this never raises.
    """
    if not isinstance(text, str):
        return 0

    cleaned = _NON_PRICE_CHARS.sub('', text)
    if not cleaned:
        return 0

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return 0

    if not amount.is_finite() or amount < 0:
        return 0

    return int((amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _shipping_text(listing: Any) -> Optional[str]:
    if isinstance(listing, str):
        return listing
    if not isinstance(listing, Mapping):
        return None

    shipping = listing.get('shipping')
    if isinstance(shipping, Mapping):
        shipping = shipping.get('text')
    return shipping if isinstance(shipping, str) else None


def shipping_cents(listing: Any) -> int:
    """
    Shipping cost of a scraped listing in cents.

    The listing is a mapping whose ``shipping`` entry is either the shipping
    text itself or ``{"text": ...}`` as returned by the listings script.
    Missing shipping text and free shipping both count as 0.
    """
    text = _shipping_text(listing)
    if not text or not text.strip():
        return 0

    lowered = text.lower()
    if any(marker in lowered for marker in _FREE_SHIPPING_MARKERS):
        return 0

    return parse_price(text)


def _to_cents(value: PriceValue) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    return parse_price(value)


def cents_to_display(cents: int) -> str:
    """Format cents as "$X.XX"."""
    sign = '-' if cents < 0 else ''
    dollars, remainder = divmod(abs(cents), 100)
    return f"{sign}${dollars}.{remainder:02d}"


def format_total(base: PriceValue, shipping: PriceValue = 0) -> str:
    """
    Sum base price and shipping and format the total as "$X.XX".

    Both arguments may be cents or already-formatted price strings, so
    formatting a formatted total again returns the same string.
    """
    return cents_to_display(_to_cents(base) + _to_cents(shipping))
