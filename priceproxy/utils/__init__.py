"""
Utility modules for the price proxy.
"""

from .helpers import (
    build_condition_url,
    build_search_url,
    is_exact_card_match,
    is_playable_title,
    normalize_card_key,
    normalize_title,
)
from .polling import wait_for

__all__ = [
    'build_condition_url',
    'build_search_url',
    'is_exact_card_match',
    'is_playable_title',
    'normalize_card_key',
    'normalize_title',
    'wait_for',
]
