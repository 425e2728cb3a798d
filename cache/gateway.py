"""Read-through / write-back boundary between the resolver and the lyrics store.

The gateway is the only component that writes persisted state. Reads treat
anything older than the TTL as a miss, and an unreachable store as a miss.
Writes happen only above the confidence threshold and never replace a fresh
entry that carries a higher confidence.
"""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from cachetools import TTLCache  # type: ignore[import-untyped]

from cache.memory_cache import should_skip_cache
from cache.store import CacheEntry, LyricsStore
from core.exceptions import CacheUnavailableError
from core.telemetry import record_cache_event, record_store_time
from core.text import make_cache_key

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def is_fresh(entry: CacheEntry, now: datetime, ttl_seconds: int) -> bool:
    """An entry exactly ``ttl_seconds`` old is still fresh."""
    return (now - entry.created_at).total_seconds() <= ttl_seconds


class CacheGateway:
    """Guards the lyrics store with TTL reads and never-downgrade writes."""

    def __init__(
        self,
        store: LyricsStore | None,
        ttl_seconds: int = 604800,
        write_threshold: float = 0.7,
        clock: Clock = utcnow,
        memory_cache: TTLCache | None = None,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.write_threshold = write_threshold
        self.clock = clock
        self.memory_cache = memory_cache

    @staticmethod
    def key_for(artist: str, title: str) -> str:
        return make_cache_key(artist, title)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return is_fresh(entry, self.clock(), self.ttl_seconds)

    async def _read_store(self, key: str) -> CacheEntry | None:
        if self.store is None:
            return None
        start = time.perf_counter()
        try:
            return await self.store.get(key)
        finally:
            record_store_time((time.perf_counter() - start) * 1000)

    async def get(self, key: str) -> CacheEntry | None:
        """Return a fresh entry for ``key`` or None.

        Stale entries and store failures are both reported as misses.
        """
        if should_skip_cache():
            return None

        if self.memory_cache is not None:
            entry = self.memory_cache.get(key)
            if entry is not None and self.is_fresh(entry):
                record_cache_event("memory_hits")
                logger.debug(f"Memory cache hit for {key}")
                return entry

        try:
            entry = await self._read_store(key)
        except CacheUnavailableError as e:
            logger.warning(f"Lyrics store unavailable, treating {key} as a miss: {e}")
            record_cache_event("store_misses")
            return None

        if entry is None:
            record_cache_event("store_misses")
            return None

        if not self.is_fresh(entry):
            logger.debug(f"Stale cache entry for {key} from {entry.created_at.isoformat()}")
            record_cache_event("stale_hits")
            return None

        record_cache_event("store_hits")
        if self.memory_cache is not None:
            self.memory_cache[key] = entry
        return entry

    async def put(self, entry: CacheEntry) -> bool:
        """Write ``entry`` if it clears the threshold and would not downgrade.

        Returns True when the entry was written. Store failures are logged and
        reported as False; they never propagate to the caller.
        """
        if entry.confidence <= self.write_threshold:
            logger.debug(
                f"Not caching {entry.key}: confidence {entry.confidence:.2f} "
                f"<= threshold {self.write_threshold:.2f}"
            )
            record_cache_event("skipped_writes")
            return False

        return await self._write(entry, allow_downgrade=False)

    async def save_verified(self, entry: CacheEntry) -> bool:
        """Write a manually verified entry, bypassing the threshold and downgrade checks."""
        return await self._write(entry, allow_downgrade=True)

    async def _write(self, entry: CacheEntry, allow_downgrade: bool) -> bool:
        if self.store is None:
            return False

        try:
            if not allow_downgrade:
                existing = await self._read_store(entry.key)
                if (
                    existing is not None
                    and self.is_fresh(existing)
                    and existing.confidence > entry.confidence
                ):
                    logger.info(
                        f"Keeping cached {entry.key} from {existing.source} "
                        f"({existing.confidence:.2f} > {entry.confidence:.2f})"
                    )
                    record_cache_event("skipped_writes")
                    return False

            start = time.perf_counter()
            await self.store.put(entry)
            record_store_time((time.perf_counter() - start) * 1000)
        except CacheUnavailableError as e:
            logger.warning(f"Failed to cache lyrics for {entry.key}: {e}")
            return False

        if self.memory_cache is not None:
            self.memory_cache[entry.key] = entry
        record_cache_event("writes")
        logger.info(f"Cached lyrics for {entry.key} from {entry.source} ({entry.confidence:.2f})")
        return True

    async def purge(self, key: str) -> bool:
        """Remove an entry from both tiers. Returns True if the store held it."""
        if self.memory_cache is not None:
            self.memory_cache.pop(key, None)
        if self.store is None:
            return False
        return await self.store.delete(key)
