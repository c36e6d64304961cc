"""Tests for the HTTP listing page strategy (no network)."""

import httpx
import pytest

from listingwatch.config import AcquisitionConfig
from listingwatch.scraper.base_strategy import FetchError
from listingwatch.scraper.http_strategy import HttpListingStrategy
from listingwatch.scraper.humanizer import Humanizer

SEARCH_URL = "https://www.yad2.co.il/vehicles/cars?manufacturer=19"

RESULTS_PAGE = """
<html><body>
  <div class="feed">
    <a href="/vehicles/item/abc123">Civic 2018</a>
    <a href="/vehicles/item/abc123">Civic 2018 (photo)</a>
    <a href="https://www.yad2.co.il/vehicles/item/def456">Civic 2019</a>
    <a href="/vehicles/item/ghi789#gallery">Gallery</a>
    <a href="https://evil.example.com/vehicles/item/zzz999">Elsewhere</a>
    <a href="/vehicles/item/jkl012">Civic 2020</a>
  </div>
</body></html>
"""


def strategy_for(handler, **config):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpListingStrategy(
        AcquisitionConfig(**config), client=client, humanizer=Humanizer(base_delay=0, jitter=0),
    )


class TestParseLinks:
    def test_first_matching_selector(self):
        strategy = HttpListingStrategy(AcquisitionConfig())
        links = strategy.parse_links(RESULTS_PAGE, SEARCH_URL)
        assert links == [
            "https://www.yad2.co.il/vehicles/item/abc123",
            "https://www.yad2.co.il/vehicles/item/def456",
            "https://www.yad2.co.il/vehicles/item/jkl012",
        ]

    def test_fallback_to_generic_links(self):
        html = """
        <a href="/vehicles/private/car-1">car 1</a>
        <a href="/vehicles/cars?page=2">next page</a>
        <a href="/realestate/forsale">homes</a>
        """
        strategy = HttpListingStrategy(AcquisitionConfig(link_selectors=[".feeditem a"]))
        links = strategy.parse_links(html, SEARCH_URL)
        assert links == ["https://www.yad2.co.il/vehicles/private/car-1"]

    def test_no_links(self):
        strategy = HttpListingStrategy(AcquisitionConfig(fallback_path=None))
        assert strategy.parse_links("<html><body>Blocked</body></html>", SEARCH_URL) == []

    def test_any_host_when_unrestricted(self):
        html = '<a href="https://other.example.com/item/q1">q1</a>'
        strategy = HttpListingStrategy(AcquisitionConfig(allowed_host=None))
        assert strategy.parse_links(html, SEARCH_URL) == ["https://other.example.com/item/q1"]


class TestFetch:
    @pytest.mark.asyncio
    async def test_fetch_returns_links(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["ua"] = request.headers["user-agent"]
            return httpx.Response(200, text=RESULTS_PAGE)

        links = await strategy_for(handler).fetch(SEARCH_URL)

        assert len(links) == 3
        assert seen["url"] == SEARCH_URL
        assert "Mozilla/5.0" in seen["ua"]

    @pytest.mark.asyncio
    async def test_http_error_raises_fetch_error(self):
        strategy = strategy_for(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(FetchError):
            await strategy.fetch(SEARCH_URL)

    @pytest.mark.asyncio
    async def test_connection_error_raises_fetch_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError):
            await strategy_for(handler).fetch(SEARCH_URL)
