"""Abstract base strategy for listing page scrapers.

A strategy turns a search results URL into the listing references found on
that page. The base class provides shared accessors for acquisition config.
"""

from abc import ABC, abstractmethod
from typing import List

from listingwatch.config import AcquisitionConfig


class FetchError(Exception):
    """Listings could not be acquired for a URL."""


class BaseScrapeStrategy(ABC):
    """Abstract base class for all listing scraping strategies."""

    def __init__(self, config: AcquisitionConfig):
        self.config = config

    @abstractmethod
    async def fetch(self, url: str) -> List[str]:
        """Return listing URLs found at ``url``, deduplicated, in page order.

        Raises FetchError if the page can't be retrieved.
        """
        ...

    def get_rate_limit(self) -> float:
        """Get the base delay before a request, in seconds."""
        return self.config.base_delay

    def get_headers(self) -> dict:
        return {
            "User-Agent": self.config.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "he-IL,he;q=0.9,en-US;q=0.8,en;q=0.7",
        }
