"""Randomized pacing for page requests.

Listing sites block clients that hit them at machine-regular intervals, so
every request is preceded by a jittered pause.
"""

import asyncio
import random
import logging

logger = logging.getLogger(__name__)


class Humanizer:
    """Adds human-like delay patterns to page fetches."""

    def __init__(self, base_delay: float = 2.0, jitter: float = 1.0):
        self.base_delay = base_delay
        self.jitter = jitter
        self._request_count = 0

    def next_wait(self) -> float:
        """Seconds to wait before the next request: base delay plus 0..2x jitter."""
        if self.base_delay <= 0:
            return 0.0
        return self.base_delay * random.uniform(0.5, 1.5) + random.uniform(0, 2 * self.jitter)

    async def delay(self):
        self._request_count += 1
        wait = self.next_wait()
        logger.debug("Humanized delay: %.2fs (request #%d)", wait, self._request_count)
        if wait:
            await asyncio.sleep(wait)
