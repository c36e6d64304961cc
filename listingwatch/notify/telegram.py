"""Notification delivery.

``send`` is best-effort: failures are logged and reported as ``False``,
never retried or raised.
"""

import httpx
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class DeliveryError(Exception):
    """A message could not be delivered."""


class BaseNotifier(ABC):

    async def send(self, text: str) -> bool:
        try:
            await self._deliver(text)
        except DeliveryError as e:
            logger.error("Failed to send notification: %s", e)
            return False
        return True

    @abstractmethod
    async def _deliver(self, text: str) -> None:
        """Deliver one message or raise DeliveryError."""
        ...


class TelegramNotifier(BaseNotifier):
    """Sends messages to one chat through the Telegram Bot API."""

    def __init__(
        self,
        api_token: str,
        chat_id: str,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = TELEGRAM_API_URL,
        timeout: float = 30.0,
    ):
        self.chat_id = chat_id
        self._url = f"{base_url}/bot{api_token}/sendMessage"
        self._client = client
        self._timeout = timeout

    async def _deliver(self, text: str) -> None:
        payload = {"chat_id": self.chat_id, "text": text, "disable_web_page_preview": False}
        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            # Don't leak the bot token embedded in the request URL
            raise DeliveryError(f"{type(e).__name__}: {_redact(str(e), self._url)}") from None

        if not isinstance(body, dict) or not body.get("ok", False):
            description = body.get("description") if isinstance(body, dict) else None
            raise DeliveryError(description or "Telegram returned ok=false")


class LogNotifier(BaseNotifier):
    """Dry-run notifier: logs messages instead of sending them."""

    def __init__(self):
        self.sent: List[str] = []

    async def _deliver(self, text: str) -> None:
        self.sent.append(text)
        logger.info("[dry-run] %s", text)


def _redact(message: str, url: str) -> str:
    return message.replace(url, "<telegram sendMessage>")
