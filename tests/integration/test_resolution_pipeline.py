"""Integration tests for the full resolution pipeline over a real SQLite store."""

from datetime import UTC, datetime, timedelta

import pytest

from cache.gateway import CacheGateway
from cache.memory_cache import set_skip_cache
from lyrics.consolidator import Consolidator
from lyrics.dispatcher import DispatchPolicy, Dispatcher
from lyrics.language import classify
from lyrics.models import LanguageTag, ResolveRequest
from lyrics.normalizer import QueryNormalizer
from lyrics.resolver import LyricsResolver
from tests.factories import KOREAN_QUERY, make_backend, make_candidate, make_entry, make_lyrics

pytestmark = pytest.mark.integration


def ed_sheeran():
    return ResolveRequest(artist="Ed Sheeran", title="Perfect")


class TestCacheBehaviour:
    @pytest.mark.asyncio
    async def test_second_resolution_is_identical_and_skips_providers(
        self, resolver, network_providers
    ):
        first = await resolver.resolve(ed_sheeran())
        second = await resolver.resolve(ed_sheeran())

        assert second.cached is True
        assert second.result.text == first.result.text
        assert all(provider.calls <= 1 for provider in network_providers.values())

    @pytest.mark.asyncio
    async def test_weak_result_not_written(self, resolver, network_providers, lyrics_store):
        for provider_id in ("lrclib", "llm_search:openai"):
            network_providers[provider_id].candidate = None
        network_providers["genius"].candidate = make_candidate(source="genius", confidence=0.6)

        response = await resolver.resolve(ed_sheeran())

        assert response.success is True
        assert await lyrics_store.get("ed_sheeran_perfect") is None

    @pytest.mark.asyncio
    async def test_stale_entry_refreshed(self, resolver, lyrics_store, network_providers):
        stale = make_entry(source="genius", confidence=0.9, created_at=datetime.now(UTC) - timedelta(days=8))
        await lyrics_store.put(stale)

        response = await resolver.resolve(ed_sheeran())

        assert response.cached is False
        assert network_providers["lrclib"].calls == 1
        assert (await lyrics_store.get("ed_sheeran_perfect")).source == "lrclib"

    @pytest.mark.asyncio
    async def test_stale_entry_does_not_end_dispatch_early(
        self, resolver, lyrics_store, network_providers
    ):
        stale = make_entry(
            source="genius",
            text=make_lyrics(40, prefix="OLD"),
            confidence=0.9,
            created_at=datetime.now(UTC) - timedelta(days=30),
        )
        await lyrics_store.put(stale)
        network_providers["lrclib"].delay = 0.5

        response = await resolver.resolve(ed_sheeran())

        assert response.result.source == "lrclib"
        assert network_providers["lrclib"].cancelled is False
        stored = await lyrics_store.get("ed_sheeran_perfect")
        assert stored.source == "lrclib"
        assert not stored.text.startswith("OLD")

    @pytest.mark.asyncio
    async def test_skip_cache_ignores_fresh_entry(self, resolver, lyrics_store, network_providers):
        await lyrics_store.put(
            make_entry(source="genius", text=make_lyrics(40, prefix="OLD"), created_at=datetime.now(UTC))
        )
        network_providers["lrclib"].delay = 0.5

        set_skip_cache(True)
        response = await resolver.resolve(ed_sheeran())

        assert response.cached is False
        assert response.result.source == "lrclib"
        assert network_providers["lrclib"].cancelled is False

    @pytest.mark.asyncio
    async def test_store_failure_is_not_fatal(self, resolver, lyrics_store):
        await lyrics_store.close()
        response = await resolver.resolve(ed_sheeran())
        assert response.success is True
        assert response.result.source == "lrclib"


class TestRouting:
    @pytest.mark.asyncio
    async def test_korean_providers_selected(self, resolver):
        language = classify(f"{KOREAN_QUERY['artist']} {KOREAN_QUERY['title']}")
        assert language == LanguageTag.KO

        ids = [provider.id for provider in resolver.dispatcher.select(language)]
        assert {"melon", "bugs", "genie"} <= set(ids)
        assert "genius" not in ids


class TestDegradation:
    @pytest.mark.asyncio
    async def test_all_providers_empty(self, resolver, network_providers, lyrics_store):
        for provider in network_providers.values():
            provider.candidate = None

        response = await resolver.resolve(ed_sheeran())

        assert response.success is False
        assert response.result is None
        assert await lyrics_store.get("ed_sheeran_perfect") is None


class TestConsolidationFallback:
    @pytest.mark.asyncio
    async def test_failed_consolidation_keeps_ranked_best(self, registry, cache_gateway, network_providers):
        # Plain results only, so the best candidate is eligible for consolidation.
        network_providers["lrclib"].candidate = make_candidate(
            source="lrclib", text=make_lyrics(4), confidence=0.95
        )
        network_providers["genius"].candidate = make_candidate(source="genius", text=make_lyrics(100))
        network_providers["llm_search:openai"].candidate = make_candidate(
            source="llm_search:openai", text=make_lyrics(100), confidence=0.75
        )
        backend = make_backend("anthropic", reply="I'm sorry, I can't provide those lyrics.")
        resolver = LyricsResolver(
            normalizer=QueryNormalizer(),
            dispatcher=Dispatcher(registry, DispatchPolicy(deadline=2.0)),
            consolidator=Consolidator([backend]),
            gateway=cache_gateway,
        )

        response = await resolver.resolve(ed_sheeran())

        backend.complete.assert_called_once()
        assert response.consolidated is False
        assert response.result.source == "lrclib"
        assert response.result.text == make_lyrics(4)


class TestCacheKeys:
    def test_same_key_for_spacing_and_case(self):
        assert CacheGateway.key_for("ED  sheeran", " Perfect ") == CacheGateway.key_for("Ed Sheeran", "Perfect")
