"""HTTP scraping strategy for listing search pages.

Fetches a search results page with httpx and pulls listing links out of the
HTML with BeautifulSoup. Link selectors are tried in order and the first one
that yields links wins; if none match, any link under the fallback path is
taken instead.
"""

import httpx
import logging
from typing import Callable, Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from listingwatch.config import AcquisitionConfig
from listingwatch.scraper.base_strategy import BaseScrapeStrategy, FetchError
from listingwatch.scraper.humanizer import Humanizer

logger = logging.getLogger(__name__)


class HttpListingStrategy(BaseScrapeStrategy):
    """Concrete strategy scraping listing links from server-rendered HTML."""

    def __init__(
        self,
        config: AcquisitionConfig,
        client: Optional[httpx.AsyncClient] = None,
        humanizer: Optional[Humanizer] = None,
    ):
        super().__init__(config)
        self._client = client
        self.humanizer = humanizer or Humanizer(base_delay=self.get_rate_limit())

    async def fetch(self, url: str) -> List[str]:
        await self.humanizer.delay()
        logger.info("Fetching listings page: %s", url)

        try:
            if self._client is not None:
                response = await self._client.get(url, headers=self.get_headers())
            else:
                async with httpx.AsyncClient(
                    timeout=self.config.timeout, follow_redirects=True,
                ) as client:
                    response = await client.get(url, headers=self.get_headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e

        links = self.parse_links(response.text, str(response.url))
        logger.info("Found %d listing links at %s", len(links), url)
        return links

    def parse_links(self, html: str, page_url: str) -> List[str]:
        """Extract absolute listing URLs from a results page, in page order."""
        soup = BeautifulSoup(html, "html.parser")

        for selector in self.config.link_selectors:
            links = self._collect(soup.select(selector), page_url, self._on_allowed_host)
            if links:
                logger.debug("Found %d links with selector: %s", len(links), selector)
                return links

        fallback_path = self.config.fallback_path
        if not fallback_path:
            return []

        def is_fallback_link(href: str) -> bool:
            parsed = urlparse(href)
            return (
                self._on_allowed_host(href)
                and fallback_path in parsed.path
                and not parsed.query
            )

        links = self._collect(soup.select("a[href]"), page_url, is_fallback_link)
        logger.debug("Found %d generic links under %s", len(links), fallback_path)
        return links

    def _on_allowed_host(self, href: str) -> bool:
        host = self.config.allowed_host
        return not host or host in (urlparse(href).hostname or "")

    @staticmethod
    def _collect(anchors: Iterable, page_url: str, accept: Callable[[str], bool]) -> List[str]:
        links = []
        seen = set()
        for anchor in anchors:
            raw = anchor.get("href")
            if not raw:
                continue
            href = urljoin(page_url, raw)
            if "#" in href or href in seen or not accept(href):
                continue
            seen.add(href)
            links.append(href)
        return links
