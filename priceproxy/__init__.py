"""
Price Proxy Package

Scrapes current TCGplayer prices for Magic: The Gathering cards with a shared
headless browser and serves them through a small async API. The package
provides request deduplication and caching, browser session management,
rate-limit recovery and price normalization.
"""

__version__ = "1.0.0"
__author__ = "Price Proxy Team"
