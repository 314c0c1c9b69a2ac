"""
Routes Module

Defines the card price API routes.
"""

import logging

from quart import current_app, jsonify, request

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    "invalid_request": 400,
    "not_legal": 404,
    "no_product": 404,
    "no_prices": 404,
    "navigation_failed": 502,
    "internal_error": 502,
}


def get_price_service():
    return current_app.config["PRICE_SERVICE"]


def status_for_error(error_code) -> int:
    return ERROR_STATUS_CODES.get(error_code, 502)


def register_routes(app):
    """Register all routes with the Quart application."""

    @app.route('/card_info', methods=['GET'])
    async def card_info():
        """Current prices for a card by name."""
        card_name = request.args.get('name', '').strip()
        if not card_name:
            return jsonify({
                "error": "Missing required query parameter: name",
                "legality": "unknown",
                "prices": {},
            }), 400

        logger.info(f"Price request for card: {card_name}")
        try:
            result = await get_price_service().get_card_info(card_name)
        except Exception as e:
            logger.error(f"Error in card info endpoint: {e}", exc_info=True)
            return jsonify({
                "error": "Internal server error",
                "legality": "unknown",
                "prices": {},
            }), 500

        if result.success:
            return jsonify(result.to_response())

        return jsonify(result.to_response()), status_for_error(result.error_code)

    @app.route('/health', methods=['GET'])
    async def health_check():
        """Health check endpoint."""
        stats = get_price_service().get_stats()
        return jsonify({
            "status": "healthy",
            "service": "Card Price Proxy",
            **stats,
        })

    @app.route('/cache/stats', methods=['GET'])
    async def cache_stats():
        """Price cache statistics."""
        try:
            return jsonify({
                "success": True,
                "data": get_price_service().coordinator.get_stats(),
            })
        except Exception as e:
            logger.error(f"Error getting cache stats: {e}")
            return jsonify({
                "success": False,
                "error": "Internal server error during cache stats retrieval",
            }), 500
