"""Integration test fixtures.

Provides a real SQLiteLyricsStore on an in-memory database and a resolver
whose network providers are replaced by fakes with fixed answers.
"""

import pytest
import pytest_asyncio

from cache.gateway import CacheGateway
from cache.memory_cache import clear_all_caches, set_skip_cache
from cache.store import SQLiteLyricsStore
from config.settings import Settings
from lyrics.consolidator import Consolidator
from lyrics.dispatcher import DispatchPolicy, Dispatcher
from lyrics.models import LanguageTag
from lyrics.normalizer import QueryNormalizer
from lyrics.resolver import LyricsResolver
from providers.database import DatabaseProvider
from providers.registry import ProviderRegistry
from tests.factories import FakeProvider, make_candidate, make_lyrics

# ---------------------------------------------------------------------------
# Canned provider answers
# ---------------------------------------------------------------------------

SYNCED_LRC = "\n".join(f"[00:{i:02d}.00] line number {i} of the song" for i in range(40))


def fake_network_providers():
    """One fake per routed network source, keyed by id."""
    return {
        "lrclib": FakeProvider(
            "lrclib",
            candidate=make_candidate(
                source="lrclib",
                text=make_lyrics(40),
                synced_text=SYNCED_LRC,
                has_timestamps=True,
                confidence=0.95,
            ),
            authoritative=True,
        ),
        "genius": FakeProvider(
            "genius",
            candidate=make_candidate(source="genius", confidence=0.85),
            languages=[LanguageTag.EN, LanguageTag.JA, LanguageTag.ZH, LanguageTag.UNKNOWN],
        ),
        "melon": FakeProvider(
            "melon",
            candidate=make_candidate(source="melon", text=make_lyrics(30, prefix="가사"), confidence=0.9),
            languages=[LanguageTag.KO],
        ),
        "bugs": FakeProvider("bugs", languages=[LanguageTag.KO]),
        "genie": FakeProvider("genie", languages=[LanguageTag.KO]),
        "llm_search:openai": FakeProvider(
            "llm_search:openai",
            candidate=make_candidate(source="llm_search:openai", text=make_lyrics(35), confidence=0.85),
        ),
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_caches():
    """Clear the in-memory tier and the skip flag between tests."""
    set_skip_cache(False)
    yield
    clear_all_caches()


@pytest_asyncio.fixture
async def lyrics_store():
    """Real SQLiteLyricsStore backed by an in-memory database."""
    store = SQLiteLyricsStore(":memory:")
    await store.connect()

    yield store

    await store.close()


@pytest.fixture
def test_settings():
    """Settings with no real keys, telemetry disabled."""
    return Settings(
        groq_api_key=None,
        openai_api_key=None,
        anthropic_api_key=None,
        perplexity_api_key=None,
        gemini_api_key=None,
        database_url=None,
        sentry_dsn=None,
        posthog_api_key=None,
        enable_telemetry=False,
        admin_token="integration-token",
        lyrics_db_path="test_lyrics.db",
    )


@pytest.fixture
def network_providers():
    return fake_network_providers()


@pytest.fixture
def registry(lyrics_store, network_providers):
    return ProviderRegistry([DatabaseProvider(lyrics_store), *network_providers.values()])


@pytest.fixture
def cache_gateway(lyrics_store):
    return CacheGateway(lyrics_store, ttl_seconds=604800, write_threshold=0.7)


@pytest.fixture
def resolver(registry, cache_gateway):
    """Resolver wired the way the app wires it, minus LLM backends."""
    return LyricsResolver(
        normalizer=QueryNormalizer(),
        dispatcher=Dispatcher(registry, DispatchPolicy(deadline=2.0)),
        consolidator=Consolidator(),
        gateway=cache_gateway,
    )


@pytest_asyncio.fixture
async def app_client(lyrics_store, registry, cache_gateway, resolver, test_settings):
    """httpx AsyncClient with a real SQLite store and fake network providers."""
    from httpx import ASGITransport, AsyncClient

    from config.settings import get_settings
    from core.dependencies import (
        get_cache_gateway,
        get_llm_backends,
        get_lyrics_store,
        get_posthog_client,
        get_provider_registry,
        get_resolver,
    )
    from main import app

    app.dependency_overrides[get_lyrics_store] = lambda: lyrics_store
    app.dependency_overrides[get_llm_backends] = lambda: {}
    app.dependency_overrides[get_provider_registry] = lambda: registry
    app.dependency_overrides[get_cache_gateway] = lambda: cache_gateway
    app.dependency_overrides[get_resolver] = lambda: resolver
    app.dependency_overrides[get_posthog_client] = lambda: None
    app.dependency_overrides[get_settings] = lambda: test_settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
