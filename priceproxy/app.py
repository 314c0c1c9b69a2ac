"""
Async Application Module using Quart

Creates the Quart application that serves card prices, wires the price
service into its lifecycle, and runs it under Hypercorn.
"""

import asyncio
import logging
from typing import Optional

from quart import Quart
from quart_cors import cors

from .config import (
    LOG_FILE,
    get_cors_origins,
    get_debug_mode,
    get_log_level,
    get_port,
    validate_config,
)
from .routes import register_routes
from .service import PriceService

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Driver chatter that shows up whenever a page or context closes mid-request
HARMLESS_BROWSER_MESSAGES = (
    "Target closed",
    "Target page, context or browser has been closed",
    "Frame was detached",
    "Execution context was destroyed",
    "Navigation interrupted by another navigation",
)


class BrowserNoiseFilter(logging.Filter):
    """Drops harmless browser-driver warnings and trims the rest to one line."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno != logging.WARNING:
            return True

        message = record.getMessage()
        if any(noise in message for noise in HARMLESS_BROWSER_MESSAGES):
            return False

        first_line = message.split("\n", 1)[0]
        if first_line != message:
            record.msg = first_line
            record.args = None
        return True


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = LOG_FILE) -> None:
    """Configure root logging for the service."""
    log_level = getattr(logging, level or get_log_level(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    root = logging.getLogger()
    if log_file and not any(isinstance(h, logging.FileHandler) for h in root.handlers):
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(log_level)
        root.addHandler(file_handler)

    for handler in root.handlers:
        if not any(isinstance(f, BrowserNoiseFilter) for f in handler.filters):
            handler.addFilter(BrowserNoiseFilter())


def create_app(service: Optional[PriceService] = None) -> Quart:
    """
    Create and configure the Quart application.

    Args:
        service: Price service to serve requests with. A default one is
            built when omitted.

    Returns:
        Quart: Configured Quart application
    """
    # Validate configuration
    if not validate_config():
        raise RuntimeError("Configuration validation failed")

    configure_logging()
    logger = logging.getLogger(__name__)
    logger.info("Initializing Card Price Proxy...")

    app = Quart(__name__)
    app = cors(
        app,
        allow_origin=get_cors_origins(),
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=600,
    )

    app.config["PRICE_SERVICE"] = service or PriceService()

    register_routes(app)
    logger.info("Routes registered successfully")

    @app.before_serving
    async def startup():
        await app.config["PRICE_SERVICE"].start()

    @app.after_serving
    async def shutdown():
        """Cleanup resources on shutdown."""
        logger.info("Shutting down app...")
        await app.config["PRICE_SERVICE"].shutdown()
        logger.info("Cleanup completed")

    logger.info("Available endpoints:")
    for rule in app.url_map.iter_rules():
        logger.info(f"  {rule.methods} {rule.rule}")

    return app


async def run_async_app():
    """
    Run the Quart application, with Hypercorn outside debug mode.
    """
    app = create_app()
    port = get_port()
    debug = get_debug_mode()

    print(f"Starting Card Price Proxy on port {port}...")
    print("Available endpoints:")
    print("  GET /card_info?name=<card> - Current prices for a card")
    print("  GET /health - Health check with browser and cache stats")
    print("  GET /cache/stats - Price cache statistics")

    if debug:
        # Use Quart's built-in server for development
        await app.run_task(host="0.0.0.0", port=port, debug=debug)
    else:
        from hypercorn.asyncio import serve
        from hypercorn.config import Config

        config = Config()
        config.bind = [f"0.0.0.0:{port}"]
        config.workers = 1  # One process so every request shares the browser
        config.accesslog = "-"
        config.errorlog = "-"

        print(f"Starting Hypercorn ASGI server on port {port}...")
        await serve(app, config)


if __name__ == "__main__":
    asyncio.run(run_async_app())
