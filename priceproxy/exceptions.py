"""
Scrape error hierarchy.

Every failure the scrape pipeline can run into derives from ScrapeError. The
pipeline catches them and turns them into a structured LookupResult, so none
of these ever reaches the API layer.
"""

from typing import Any, Dict, Optional


class ScrapeError(Exception):
    """Base class for scrape failures."""

    def __init__(
        self,
        message: str,
        *,
        request_id: Optional[str] = None,
        url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.url = url
        self.details = details or {}

    def __str__(self) -> str:
        base = self.message
        if self.url:
            base += f" (url: {self.url})"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "request_id": self.request_id,
            "url": self.url,
            "details": self.details,
        }


class NavigationFailure(ScrapeError):
    """A page could not be reached (network error or timeout)."""


class RateLimited(ScrapeError):
    """The target site served a block or rate-limit page."""


class NoMatchFound(ScrapeError):
    """The search produced no exact-match playable product."""


class NoListingFound(ScrapeError):
    """A condition never rendered a listing before the timeout."""


class ExtractionError(ScrapeError):
    """The DOM did not have the shape the extraction scripts expect."""
