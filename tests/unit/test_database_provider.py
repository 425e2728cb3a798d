"""Unit tests for providers/database.py."""

from datetime import timedelta

import pytest

from cache.memory_cache import set_skip_cache
from providers.database import DatabaseProvider
from tests.factories import FIXED_NOW, InMemoryStore, make_entry, make_query

WEEK = 7 * 24 * 3600


def make_provider(*entries, available=True):
    return DatabaseProvider(
        InMemoryStore(list(entries), available=available),
        ttl_seconds=WEEK,
        clock=lambda: FIXED_NOW,
    )


class TestDatabaseProvider:
    def test_metadata(self):
        provider = make_provider()
        assert provider.id == "database"
        assert provider.authoritative is True
        assert provider.languages is None

    @pytest.mark.asyncio
    async def test_found_by_normalized_key(self):
        entry = make_entry(
            synced_text="[00:01.00] line", has_timestamps=True, confidence=0.93, source="lrclib"
        )
        candidate = await make_provider(entry).search(make_query("  ED  sheeran", "PERFECT "))
        assert candidate.source == "database"
        assert candidate.confidence == 0.93
        assert candidate.has_timestamps is True
        assert candidate.synced_text == "[00:01.00] line"
        assert candidate.text == entry.text

    @pytest.mark.asyncio
    async def test_miss(self):
        result = await make_provider().lookup(make_query())
        assert result.outcome == "empty"

    @pytest.mark.asyncio
    async def test_store_down(self):
        result = await make_provider(available=False).lookup(make_query())
        assert result.candidate is None
        assert result.outcome == "store_unavailable"

    @pytest.mark.asyncio
    async def test_read_only(self):
        store = InMemoryStore([make_entry()])
        await DatabaseProvider(store, clock=lambda: FIXED_NOW).search(make_query())
        assert store.puts == []


class TestFreshness:
    @pytest.mark.asyncio
    async def test_stale_entry_not_offered(self):
        stale = make_entry(confidence=0.9, created_at=FIXED_NOW - timedelta(days=30))
        result = await make_provider(stale).lookup(make_query())
        assert result.candidate is None
        assert result.outcome == "empty"

    @pytest.mark.asyncio
    async def test_entry_at_ttl_boundary_still_offered(self):
        entry = make_entry(created_at=FIXED_NOW - timedelta(seconds=WEEK))
        assert await make_provider(entry).search(make_query()) is not None

    @pytest.mark.asyncio
    async def test_entry_one_second_past_ttl_not_offered(self):
        entry = make_entry(created_at=FIXED_NOW - timedelta(seconds=WEEK + 1))
        assert await make_provider(entry).search(make_query()) is None

    @pytest.mark.asyncio
    async def test_skip_cache_hides_fresh_entry(self):
        set_skip_cache(True)
        try:
            result = await make_provider(make_entry()).lookup(make_query())
        finally:
            set_skip_cache(False)
        assert result.candidate is None
