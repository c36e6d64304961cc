"""Test doubles shared across the test modules."""

from typing import Dict, List, Union

from listingwatch.db.store import MemoryStore, PersistenceError
from listingwatch.notify.telegram import BaseNotifier, DeliveryError
from listingwatch.scraper.base_strategy import BaseScrapeStrategy, FetchError

BASE = "https://www.yad2.co.il/vehicles/item/"


def item_url(listing_id: str) -> str:
    return f"{BASE}{listing_id}"


def item_urls(ids) -> List[str]:
    return [item_url(i) for i in ids]


class FakeStrategy(BaseScrapeStrategy):
    """Returns canned results per URL; an Exception value is raised instead."""

    def __init__(self, pages: Dict[str, Union[List[str], Exception]]):
        self.pages = pages
        self.fetched: List[str] = []

    async def fetch(self, url: str) -> List[str]:
        self.fetched.append(url)
        result = self.pages[url]
        if isinstance(result, Exception):
            raise result
        return list(result)


class RecordingNotifier(BaseNotifier):
    def __init__(self, fail: bool = False):
        self.sent: List[str] = []
        self.fail = fail

    async def _deliver(self, text: str) -> None:
        if self.fail:
            raise DeliveryError("chat not found")
        self.sent.append(text)


class FailingWriteStore(MemoryStore):
    async def _write(self, data: dict) -> None:
        raise PersistenceError("disk full")


def fetch_error(message: str = "Timeout") -> FetchError:
    return FetchError(message)
