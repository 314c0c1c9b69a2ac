"""
Helper functions for the price proxy

Card name normalization, search result title matching and TCGplayer URL
building.
"""

import logging
import re
from typing import Optional
from urllib.parse import urlencode

from ..config import TCGPLAYER_BASE_URL, TCGPLAYER_PRODUCT_LINE, TCGPLAYER_SEARCH_PATH

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r'\s+')

# Titles carrying any of these are not tournament-playable cards
NON_PLAYABLE_MARKERS = (
    'art card',
    'art series',
    'proxy',
    'playtest',
    'oversized',
    'world championship decks',
)

# Set variants and rarities that mark non-playable printings
NON_PLAYABLE_SET_MARKERS = ('world championship decks',)
NON_PLAYABLE_RARITY_MARKERS = ('token',)

# Case-sensitive: TCGplayer's marker for multi-card bundle listings
BUNDLE_TITLE_MARKER = '(ALL)'

# A card name inside a longer product title must be bounded by one of these.
# Plain whitespace is not a boundary, so "Magistrate" never matches
# "Drannith Magistrate", at the cost of also rejecting "Drannith Magistrate Foil".
_LEFT_DELIMITER = r'(?:^|(?:[(\[{:;|/]|\s[-–—])\s*)'
_RIGHT_DELIMITER = r'(?:\s*(?:[)\]},:;|/(\[]|[-–—]\s)|$)'


def normalize_title(text: Optional[str]) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    if not text:
        return ''
    return _WHITESPACE.sub(' ', str(text)).strip().lower()


def normalize_card_key(card_name: Optional[str]) -> str:
    """Cache key for a card name: case and whitespace insensitive."""
    return normalize_title(card_name)


def is_playable_title(
    title: Optional[str],
    set_variant: Optional[str] = None,
    rarity: Optional[str] = None,
) -> bool:
    """
    False for art cards, proxies, playtest cards, World Championship deck
    reprints, bundle listings, tokens and similar products.
    """
    if title and BUNDLE_TITLE_MARKER in title:
        return False

    lowered = normalize_title(title)
    if any(marker in lowered for marker in NON_PLAYABLE_MARKERS):
        return False

    lowered_set = normalize_title(set_variant)
    if any(marker in lowered_set for marker in NON_PLAYABLE_SET_MARKERS):
        return False

    lowered_rarity = normalize_title(rarity)
    return not any(marker in lowered_rarity for marker in NON_PLAYABLE_RARITY_MARKERS)


def is_exact_card_match(card_name: Optional[str], title: Optional[str]) -> bool:
    """
    Check whether a product title is the requested card.

    Matches when the normalized title equals the normalized card name, or when
    the card name appears as a delimited segment of the title, as in
    "Drannith Magistrate (Extended Art)" or "Drannith Magistrate - Ikoria".
    A card name that is only part of a longer name ("Magistrate" in
    "Drannith Magistrate") does not match.
    """
    normalized_name = normalize_title(card_name)
    normalized_title = normalize_title(title)

    if not normalized_name or not normalized_title:
        return False

    if normalized_name == normalized_title:
        return True

    pattern = _LEFT_DELIMITER + re.escape(normalized_name) + _RIGHT_DELIMITER
    is_match = re.search(pattern, normalized_title) is not None
    logger.debug(f"Title match '{normalized_name}' in '{normalized_title}': {is_match}")
    return is_match


def build_search_url(card_name: str) -> str:
    """TCGplayer search results URL for a card name."""
    query = urlencode({
        'q': card_name.strip(),
        'productLineName': TCGPLAYER_PRODUCT_LINE,
        'view': 'grid',
    })
    return f"{TCGPLAYER_BASE_URL}{TCGPLAYER_SEARCH_PATH}?{query}"


def build_condition_url(product_url: str, condition: str) -> str:
    """Product page URL filtered to one condition and English listings."""
    separator = '&' if '?' in product_url else '?'
    query = urlencode({'Condition': condition, 'Language': 'English'})
    return f"{product_url}{separator}{query}"
