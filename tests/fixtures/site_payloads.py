"""
Canned TCGplayer page payloads for testing.

Shapes match what the in-page scripts return, so fakes can hand them back
from page.evaluate without a browser.
"""

from typing import Any, Dict, List, Optional

PRODUCT_BASE_URL = "https://www.tcgplayer.com/product"

DRANNITH_PRODUCT_URL = f"{PRODUCT_BASE_URL}/221931/magic-ikoria-lair-of-behemoths-drannith-magistrate"
DRANNITH_EXTENDED_URL = f"{PRODUCT_BASE_URL}/222470/magic-ikoria-lair-of-behemoths-drannith-magistrate-extended-art"


def search_tile(
    title: str,
    price: Optional[str],
    url: Optional[str],
    set_variant: str = "",
    rarity: str = "",
) -> Dict[str, Any]:
    return {"title": title, "price": price, "url": url, "setVariant": set_variant, "rarity": rarity}


def drannith_search_results() -> List[Dict[str, Any]]:
    """Search results for "Drannith Magistrate": one real match is cheapest."""
    return [
        search_tile("Drannith Magistrate", "$16.25", DRANNITH_PRODUCT_URL),
        search_tile("Drannith Magistrate (Extended Art)", "$15.50", DRANNITH_EXTENDED_URL),
        search_tile("Drannith Magistrate - Art Card", "$0.45", f"{PRODUCT_BASE_URL}/1/art-card"),
        search_tile("Drannith Magistrate (Oversized)", "$2.00", f"{PRODUCT_BASE_URL}/2/oversized"),
        search_tile("Magistrate's Scepter", "$0.30", f"{PRODUCT_BASE_URL}/3/magistrates-scepter"),
    ]


def listing(base_price: Optional[str], shipping: Optional[str], index: int = 0) -> Dict[str, Any]:
    return {
        "index": index,
        "basePrice": {"text": base_price} if base_price is not None else None,
        "shipping": {"text": shipping} if shipping is not None else None,
    }


def listings_payload(url: str, *listings: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "count": len(listings),
        "headerText": f"{len(listings)} Listings",
        "listings": list(listings),
        "url": url,
    }


# Condition -> first listing on the filtered product page
DRANNITH_LISTINGS = {
    "Near Mint": listing("$15.94", "Free Shipping on Orders Over $5"),
    "Lightly Played": listing("$15.59", "+ $1.69 Shipping"),
    "Moderately Played": listing("$13.10", "+ $0.99 Shipping"),
    "Heavily Played": listing("$11.00", "+ $0.99 Shipping"),
}

NO_BLOCK = {
    "hasRateLimit": False,
    "hasErrorPage": False,
    "currentUrl": "https://www.tcgplayer.com/",
    "errorMessages": [],
}

RATE_LIMITED = {
    "hasRateLimit": True,
    "hasErrorPage": False,
    "currentUrl": "https://www.tcgplayer.com/search/magic/product",
    "errorMessages": ["Too many requests. Please try again later."],
}

SCRYFALL_LEGAL = {
    "object": "card",
    "name": "Drannith Magistrate",
    "legalities": {
        "standard": "not_legal",
        "modern": "legal",
        "legacy": "legal",
        "vintage": "legal",
        "commander": "legal",
    },
}

SCRYFALL_RESTRICTED_ONLY = {
    "object": "card",
    "name": "Lodestone Golem",
    "legalities": {
        "modern": "not_legal",
        "legacy": "banned",
        "vintage": "restricted",
    },
}

SCRYFALL_NOT_LEGAL = {
    "object": "card",
    "name": "Shahrazad",
    "legalities": {
        "standard": "not_legal",
        "legacy": "banned",
        "vintage": "banned",
        "commander": "banned",
    },
}
