"""Topic state store: last known listing IDs per topic.

The store owns the persisted document exclusively. Reads and writes never
raise to callers: a missing or corrupt document loads as an empty one, and a
failed write is reported as ``False``. Backends only implement raw
``_read``/``_write`` and signal failures with PersistenceError.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from listingwatch.api.schemas import StoreDocument

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_CAP = 50  # Most recent IDs kept per topic
DEFAULT_DATA_FILE = os.environ.get("LISTINGWATCH_DATA", "data/last-seen.json")


class PersistenceError(Exception):
    """A store backend could not read or write the document."""


def retain(ids: List[str], cap: Optional[int]) -> List[str]:
    """Keep at most ``cap`` most recent IDs, evicting the oldest first."""
    if not cap or len(ids) <= cap:
        return list(ids)
    return list(ids[-cap:])


class TopicStateStore(ABC):
    """Base class for all state store backends."""

    def __init__(self, retention_cap: Optional[int] = DEFAULT_RETENTION_CAP):
        self.retention_cap = retention_cap

    @abstractmethod
    async def _read(self) -> Optional[dict]:
        """Return the stored document in wire form, or None if nothing is stored."""
        ...

    @abstractmethod
    async def _write(self, data: dict) -> None:
        """Replace the stored document with ``data`` in one step."""
        ...

    async def load(self) -> StoreDocument:
        try:
            data = await self._read()
        except PersistenceError as e:
            logger.warning("Failed to load listing state, starting empty: %s", e)
            return StoreDocument()

        if data is None:
            return StoreDocument()

        try:
            return StoreDocument.from_wire(data)
        except ValueError as e:
            logger.warning("Stored listing state is malformed, starting empty: %s", e)
            return StoreDocument()

    async def save(self, doc: StoreDocument) -> bool:
        doc.last_updated = datetime.now(timezone.utc).isoformat()
        for topic, ids in doc.topics.items():
            trimmed = retain(ids, self.retention_cap)
            if len(trimmed) < len(ids):
                logger.debug("Trimmed %s from %d to %d IDs", topic, len(ids), len(trimmed))
            doc.topics[topic] = trimmed

        try:
            await self._write(doc.to_wire())
        except PersistenceError as e:
            logger.error("Failed to save listing state: %s", e)
            return False

        logger.info("Saved listing state for %d topics", len(doc.topics))
        return True

    async def get_topic(self, topic: str) -> List[str]:
        doc = await self.load()
        return doc.get_topic(topic)

    async def is_first_run(self, topic: str) -> bool:
        return not await self.get_topic(topic)

    async def get_stats(self) -> dict:
        """Summarize the store: last update and how many IDs each topic tracks."""
        doc = await self.load()
        return {
            "last_updated": doc.last_updated,
            "topics": {
                topic: {"current_listings": len(ids)}
                for topic, ids in doc.topics.items()
            },
        }


class MemoryStore(TopicStateStore):
    """In-process store. Keeps a serialized copy so callers can't alias it."""

    def __init__(self, initial: Optional[dict] = None, **kwargs):
        super().__init__(**kwargs)
        self._raw: Optional[str] = json.dumps(initial) if initial is not None else None

    async def _read(self) -> Optional[dict]:
        if self._raw is None:
            return None
        return json.loads(self._raw)

    async def _write(self, data: dict) -> None:
        self._raw = json.dumps(data)


class JsonFileStore(TopicStateStore):
    """Whole-document JSON file, written through a temp file and atomic rename."""

    def __init__(self, path: Union[str, Path] = DEFAULT_DATA_FILE, **kwargs):
        super().__init__(**kwargs)
        self.path = Path(path)

    async def _read(self) -> Optional[dict]:
        return await asyncio.to_thread(self._read_file)

    async def _write(self, data: dict) -> None:
        await asyncio.to_thread(self._write_file, data)

    def _read_file(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"{self.path}: {e}") from e

    def _write_file(self, data: dict) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError as cleanup_error:
                logger.debug("Could not remove %s: %s", tmp_path, cleanup_error)
            raise PersistenceError(f"{self.path}: {e}") from e
