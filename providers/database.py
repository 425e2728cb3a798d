"""Lyrics already saved in the local store, offered as a provider.

The cache gateway normally serves fresh entries before dispatch ever runs;
this provider covers the same ground when the gateway's read came up empty
(a dropped connection, a memory tier that was just cleared). It applies the
same rules as the gateway: entries past the TTL are not offered, and a
``skip_cache`` request sees nothing. It only reads; the gateway remains the
only writer.
"""

import logging

from cache.gateway import Clock, is_fresh, utcnow
from cache.memory_cache import should_skip_cache
from cache.store import LyricsStore
from core.exceptions import CacheUnavailableError, ProviderFailure
from core.text import make_cache_key
from lyrics.models import LyricsCandidate, Query
from providers.base import Provider

logger = logging.getLogger(__name__)

DATABASE_SOURCE = "database"


class DatabaseProvider(Provider):
    """Looks the query up in the lyrics store by its normalized key."""

    id = DATABASE_SOURCE
    authoritative = True
    timeout = 5.0

    def __init__(self, store: LyricsStore, ttl_seconds: int = 604800, clock: Clock = utcnow):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    async def _search(self, query: Query) -> LyricsCandidate | None:
        if should_skip_cache():
            return None

        key = make_cache_key(query.artist, query.title)
        try:
            entry = await self.store.get(key)
        except CacheUnavailableError as e:
            raise ProviderFailure(self.id, "store_unavailable") from e

        if entry is None:
            return None
        if not is_fresh(entry, self.clock(), self.ttl_seconds):
            logger.debug(f"Ignoring stale stored lyrics for {key} from {entry.created_at.isoformat()}")
            return None

        return LyricsCandidate(
            text=entry.text,
            synced_text=entry.synced_text,
            source=self.id,
            confidence=entry.confidence,
            has_timestamps=entry.has_timestamps,
            artist=entry.artist,
            title=entry.title,
        )

    async def close(self) -> None:
        # The store is shared with the cache gateway and closed with it.
        return None
