"""SQLite-backed state store and store construction."""

import aiosqlite
import logging
from typing import Optional

from listingwatch.api.schemas import LAST_UPDATED_KEY
from listingwatch.db.store import (
    DEFAULT_RETENTION_CAP, JsonFileStore, PersistenceError, TopicStateStore,
)

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS topic_listings (
        topic TEXT NOT NULL,
        position INTEGER NOT NULL,
        listing_id TEXT NOT NULL,
        PRIMARY KEY (topic, position)
    );

    CREATE TABLE IF NOT EXISTS store_meta (
        key TEXT PRIMARY KEY,
        value TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_listings_topic ON topic_listings(topic);
"""


async def get_db(path: str) -> aiosqlite.Connection:
    db = await aiosqlite.connect(path)
    await db.execute("PRAGMA journal_mode=WAL")
    return db


async def init_db(db: aiosqlite.Connection):
    """Create tables if they don't exist."""
    await db.executescript(SCHEMA)
    await db.commit()


class SqliteStore(TopicStateStore):
    """Stores the document as rows; a save replaces all rows in one transaction."""

    def __init__(self, path: str, **kwargs):
        super().__init__(**kwargs)
        self.path = path

    async def _read(self) -> Optional[dict]:
        try:
            db = await get_db(self.path)
            try:
                await init_db(db)
                cursor = await db.execute(
                    "SELECT topic, listing_id FROM topic_listings ORDER BY topic, position"
                )
                rows = await cursor.fetchall()
                cursor = await db.execute(
                    "SELECT value FROM store_meta WHERE key = ?", (LAST_UPDATED_KEY,)
                )
                meta = await cursor.fetchone()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"{self.path}: {e}") from e

        if not rows and meta is None:
            return None

        data = {}
        for topic, listing_id in rows:
            data.setdefault(topic, []).append(listing_id)
        data[LAST_UPDATED_KEY] = meta[0] if meta else None
        return data

    async def _write(self, data: dict) -> None:
        rows = [
            (topic, position, listing_id)
            for topic, ids in data.items() if topic != LAST_UPDATED_KEY
            for position, listing_id in enumerate(ids)
        ]
        try:
            db = await get_db(self.path)
            try:
                await init_db(db)
                await db.execute("DELETE FROM topic_listings")
                await db.executemany(
                    "INSERT INTO topic_listings (topic, position, listing_id) VALUES (?, ?, ?)",
                    rows,
                )
                await db.execute(
                    """INSERT INTO store_meta (key, value) VALUES (?, ?)
                       ON CONFLICT(key) DO UPDATE SET value=excluded.value""",
                    (LAST_UPDATED_KEY, data.get(LAST_UPDATED_KEY)),
                )
                await db.commit()
            except aiosqlite.Error:
                await db.rollback()
                raise
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"{self.path}: {e}") from e


def create_store(backend: str, path: str,
                 retention_cap: Optional[int] = DEFAULT_RETENTION_CAP) -> TopicStateStore:
    """Create the configured store backend ("json" or "sqlite")."""
    if backend == "json":
        store = JsonFileStore(path, retention_cap=retention_cap)
    elif backend == "sqlite":
        store = SqliteStore(path, retention_cap=retention_cap)
    else:
        raise ValueError(f"Unknown storage backend: '{backend}'. Available: ['json', 'sqlite']")

    logger.info("Using %s listing store at %s", backend, path)
    return store
