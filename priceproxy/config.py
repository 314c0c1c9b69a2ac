"""
Configuration Module

Centralizes all configuration settings, environment variables, and constants
used throughout the price proxy.
"""

import os
from typing import List

# Load environment variables
from dotenv import load_dotenv
load_dotenv()


def _get_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


# Application Configuration
DEFAULT_PORT = int(os.getenv("PORT", "4567"))
DEBUG_MODE = _get_bool("DEBUG", "false")

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")

# CORS Configuration
CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "*")

# Playwright Configuration
PLAYWRIGHT_HEADLESS = _get_bool("PLAYWRIGHT_HEADLESS", "true")
PLAYWRIGHT_NAVIGATION_TIMEOUT_MS = int(os.getenv("PLAYWRIGHT_NAVIGATION_TIMEOUT_MS", "30000"))
PLAYWRIGHT_PAGE_TIMEOUT_MS = int(os.getenv("PLAYWRIGHT_PAGE_TIMEOUT_MS", "30000"))

BROWSER_LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
    '--disable-blink-features=AutomationControlled',
    '--disable-features=IsolateOrigins,site-per-process',
    '--lang=en-US,en',
]

BROWSER_VIEWPORT = {'width': 1920, 'height': 1080}
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
BROWSER_LOCALE = "en-US"
BROWSER_TIMEZONE = "America/New_York"

# Sent with every page request. User-Agent is set on the context itself.
TCGPLAYER_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Upgrade-Insecure-Requests': '1',
    'Sec-Fetch-Dest': 'document',
    'Sec-Fetch-Mode': 'navigate',
    'Sec-Fetch-Site': 'none',
    'Sec-Fetch-User': '?1',
    'Cache-Control': 'max-age=0',
}

# TCGPlayer specific configuration
TCGPLAYER_BASE_URL = "https://www.tcgplayer.com"
TCGPLAYER_SEARCH_PATH = "/search/magic/product"
TCGPLAYER_PRODUCT_LINE = "magic"
BLOCKED_PAGE_PATTERN = os.getenv("BLOCKED_PAGE_PATTERN", "uhoh")

# Scrape pipeline timing
SEARCH_RESULTS_TIMEOUT_SECONDS = float(os.getenv("SEARCH_RESULTS_TIMEOUT_SECONDS", "20"))
LISTING_TIMEOUT_SECONDS = float(os.getenv("LISTING_TIMEOUT_SECONDS", "30"))
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "0.5"))
POLL_MAX_INTERVAL_SECONDS = float(os.getenv("POLL_MAX_INTERVAL_SECONDS", "2"))
MAX_CONDITIONS = int(os.getenv("MAX_CONDITIONS", "2"))

# Browsing session lifecycle
SESSION_STALE_SECONDS = float(os.getenv("SESSION_STALE_SECONDS", "600"))
SESSION_REAP_INTERVAL_SECONDS = float(os.getenv("SESSION_REAP_INTERVAL_SECONDS", "60"))

# Result cache
CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", "600"))
IN_PROGRESS_STALE_SECONDS = float(os.getenv("IN_PROGRESS_STALE_SECONDS", "300"))
CACHE_SWEEP_INTERVAL_SECONDS = float(os.getenv("CACHE_SWEEP_INTERVAL_SECONDS", "30"))

# Rate limit backoff (seconds)
RATE_LIMIT_BACKOFF_MIN = float(os.getenv("RATE_LIMIT_BACKOFF_MIN", "10"))
RATE_LIMIT_BACKOFF_MAX = float(os.getenv("RATE_LIMIT_BACKOFF_MAX", "15"))

# Scryfall legality lookup
SCRYFALL_API_BASE_URL = "https://api.scryfall.com"
LEGALITY_TIMEOUT_SECONDS = float(os.getenv("LEGALITY_TIMEOUT_SECONDS", "10"))
LEGALITY_CACHE_SECONDS = float(os.getenv("LEGALITY_CACHE_SECONDS", "3600"))

# Debug screenshots
DEBUG_SCREENSHOTS = _get_bool("DEBUG_SCREENSHOTS", "false")
DEBUG_SCREENSHOT_DIR = os.getenv("DEBUG_SCREENSHOT_DIR", "debug_screenshots")


def get_port() -> int:
    """Get application port from environment."""
    return DEFAULT_PORT

def get_debug_mode() -> bool:
    """Get debug mode setting."""
    return DEBUG_MODE

def get_log_level() -> str:
    """Get logging level."""
    return LOG_LEVEL

def get_cors_origins() -> List[str]:
    """Get the list of allowed CORS origins."""
    return [origin.strip() for origin in CORS_ALLOW_ORIGINS.split(",") if origin.strip()]

# Validation
def validate_config() -> bool:
    """
    Validate essential configuration settings.

    Returns:
        bool: True if configuration is valid, False otherwise
    """
    if RATE_LIMIT_BACKOFF_MIN < 0 or RATE_LIMIT_BACKOFF_MAX < RATE_LIMIT_BACKOFF_MIN:
        print("ERROR: RATE_LIMIT_BACKOFF_MIN/MAX must describe a non-negative range")
        return False

    if CACHE_TTL_SECONDS <= 0 or IN_PROGRESS_STALE_SECONDS <= 0:
        print("ERROR: CACHE_TTL_SECONDS and IN_PROGRESS_STALE_SECONDS must be positive")
        return False

    if SESSION_STALE_SECONDS <= 0:
        print("ERROR: SESSION_STALE_SECONDS must be positive")
        return False

    if MAX_CONDITIONS <= 0:
        print("ERROR: MAX_CONDITIONS must be a positive number")
        return False

    return True
