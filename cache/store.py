"""Persistent lyrics store.

Two interchangeable backends hold one row per normalized ``artist_title``
key: PostgreSQL through an asyncpg pool when DATABASE_URL is configured,
otherwise a local SQLite file through aiosqlite. Writes replace the whole
row atomically (upsert); nothing is ever partially updated.

Every method raises ``CacheUnavailableError`` when the backend cannot be
reached; the cache gateway decides what that means for a request.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import aiosqlite
from pydantic import BaseModel

from core.exceptions import CacheUnavailableError

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    """One stored resolution."""

    key: str
    artist: str
    title: str
    text: str
    synced_text: str | None = None
    has_timestamps: bool = False
    confidence: float
    source: str
    created_at: datetime


class LyricsStore(Protocol):
    """Key-value boundary used by the cache gateway and the database provider."""

    async def get(self, key: str) -> CacheEntry | None: ...

    async def put(self, entry: CacheEntry) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def is_available(self) -> bool: ...

    async def close(self) -> None: ...


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


# =============================================================================
# PostgreSQL
# =============================================================================

POSTGRES_SCHEMA = """
    CREATE TABLE IF NOT EXISTS lyrics_cache (
        key TEXT PRIMARY KEY,
        artist TEXT NOT NULL,
        title TEXT NOT NULL,
        text TEXT NOT NULL,
        synced_text TEXT,
        has_timestamps BOOLEAN NOT NULL DEFAULT FALSE,
        confidence REAL NOT NULL,
        source TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL
    )
"""


class PostgresLyricsStore:
    """Lyrics store backed by an asyncpg connection pool."""

    def __init__(self, pool):
        """Initialize the store with a connection pool.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def ensure_schema(self) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(POSTGRES_SCHEMA)
        except Exception as e:
            logger.error(f"Lyrics store schema setup failed: {e}")
            raise CacheUnavailableError(f"Schema setup failed: {e}") from e

    async def is_available(self) -> bool:
        """Check if the store database is available."""
        try:
            result = await self.pool.fetchval("SELECT 1")
            return bool(result == 1)
        except Exception as e:
            logger.warning(f"Lyrics store health check failed: {e}")
            return False

    async def get(self, key: str) -> CacheEntry | None:
        try:
            row = await self.pool.fetchrow(
                """
                SELECT key, artist, title, text, synced_text, has_timestamps,
                       confidence, source, created_at
                FROM lyrics_cache
                WHERE key = $1
                """,
                key,
            )
        except Exception as e:
            logger.error(f"Lyrics store read failed: {e}")
            raise CacheUnavailableError(f"Store read failed: {e}") from e

        if row is None:
            return None
        data = dict(row)
        data["created_at"] = _as_utc(data["created_at"])
        return CacheEntry(**data)

    async def put(self, entry: CacheEntry) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO lyrics_cache (key, artist, title, text, synced_text,
                                              has_timestamps, confidence, source, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                    ON CONFLICT (key) DO UPDATE SET
                        artist = EXCLUDED.artist,
                        title = EXCLUDED.title,
                        text = EXCLUDED.text,
                        synced_text = EXCLUDED.synced_text,
                        has_timestamps = EXCLUDED.has_timestamps,
                        confidence = EXCLUDED.confidence,
                        source = EXCLUDED.source,
                        created_at = EXCLUDED.created_at
                    """,
                    entry.key,
                    entry.artist,
                    entry.title,
                    entry.text,
                    entry.synced_text,
                    entry.has_timestamps,
                    entry.confidence,
                    entry.source,
                    entry.created_at,
                )
            logger.debug(f"Stored lyrics for {entry.key} ({entry.source}, {entry.confidence:.2f})")
        except Exception as e:
            logger.error(f"Lyrics store write failed: {e}")
            raise CacheUnavailableError(f"Store write failed: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            status = await self.pool.execute("DELETE FROM lyrics_cache WHERE key = $1", key)
        except Exception as e:
            logger.error(f"Lyrics store delete failed: {e}")
            raise CacheUnavailableError(f"Store delete failed: {e}") from e
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return str(status).split()[-1] != "0"

    async def close(self) -> None:
        # The pool is owned and closed by core.dependencies.
        return None


# =============================================================================
# SQLite
# =============================================================================

SQLITE_SCHEMA = """
    CREATE TABLE IF NOT EXISTS lyrics_cache (
        key TEXT PRIMARY KEY,
        artist TEXT NOT NULL,
        title TEXT NOT NULL,
        text TEXT NOT NULL,
        synced_text TEXT,
        has_timestamps INTEGER NOT NULL DEFAULT 0,
        confidence REAL NOT NULL,
        source TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
"""


class SQLiteLyricsStore:
    """Async SQLite lyrics store for single-instance deployments."""

    def __init__(self, db_path: Path | str = "lyrics.db"):
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def connect(self):
        """Open the database, creating the file and table if needed."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute(SQLITE_SCHEMA)
        await self._conn.commit()
        logger.info(f"Connected to SQLite lyrics store: {self.db_path}")

    async def close(self):
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("Closed SQLite connection")

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise CacheUnavailableError("SQLite lyrics store not connected")
        return self._conn

    async def is_available(self) -> bool:
        """Check if the database connection is alive."""
        try:
            if self._conn is None:
                return False
            async with self._conn.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
                return row is not None
        except Exception:
            return False

    async def get(self, key: str) -> CacheEntry | None:
        conn = self._require_conn()
        try:
            async with conn.execute(
                """
                SELECT key, artist, title, text, synced_text, has_timestamps,
                       confidence, source, created_at
                FROM lyrics_cache
                WHERE key = ?
                """,
                (key,),
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            logger.error(f"Lyrics store read failed: {e}")
            raise CacheUnavailableError(f"Store read failed: {e}") from e

        if row is None:
            return None
        data = dict(row)
        data["has_timestamps"] = bool(data["has_timestamps"])
        data["created_at"] = _as_utc(datetime.fromisoformat(data["created_at"]))
        return CacheEntry(**data)

    async def put(self, entry: CacheEntry) -> None:
        conn = self._require_conn()
        try:
            await conn.execute(
                """
                INSERT INTO lyrics_cache (key, artist, title, text, synced_text,
                                          has_timestamps, confidence, source, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (key) DO UPDATE SET
                    artist = excluded.artist,
                    title = excluded.title,
                    text = excluded.text,
                    synced_text = excluded.synced_text,
                    has_timestamps = excluded.has_timestamps,
                    confidence = excluded.confidence,
                    source = excluded.source,
                    created_at = excluded.created_at
                """,
                (
                    entry.key,
                    entry.artist,
                    entry.title,
                    entry.text,
                    entry.synced_text,
                    int(entry.has_timestamps),
                    entry.confidence,
                    entry.source,
                    _as_utc(entry.created_at).isoformat(),
                ),
            )
            await conn.commit()
        except Exception as e:
            logger.error(f"Lyrics store write failed: {e}")
            raise CacheUnavailableError(f"Store write failed: {e}") from e

    async def delete(self, key: str) -> bool:
        conn = self._require_conn()
        try:
            cursor = await conn.execute("DELETE FROM lyrics_cache WHERE key = ?", (key,))
            await conn.commit()
        except Exception as e:
            logger.error(f"Lyrics store delete failed: {e}")
            raise CacheUnavailableError(f"Store delete failed: {e}") from e
        return cursor.rowcount > 0
