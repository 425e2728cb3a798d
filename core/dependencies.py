"""FastAPI dependency injection providers."""

import logging

import asyncpg
from fastapi import Depends
from posthog import Posthog

from cache.gateway import CacheGateway
from cache.memory_cache import get_lyrics_cache
from cache.store import LyricsStore, PostgresLyricsStore, SQLiteLyricsStore
from config.settings import Settings, get_settings
from llm.client import LLMBackend, build_backends
from lyrics.consolidator import CONSOLIDATION_ORDER, Consolidator
from lyrics.dispatcher import Dispatcher, DispatchPolicy
from lyrics.normalizer import QueryNormalizer
from lyrics.resolver import LyricsResolver
from providers.registry import ProviderRegistry, build_providers

logger = logging.getLogger(__name__)

# Module-level instances for lifecycle management
_lyrics_store: LyricsStore | None = None
_store_pool: asyncpg.Pool | None = None
_llm_backends: dict[str, LLMBackend] | None = None
_provider_registry: ProviderRegistry | None = None
_cache_gateway: CacheGateway | None = None
_resolver: LyricsResolver | None = None
_posthog_client: Posthog | None = None


async def get_lyrics_store(settings: Settings = Depends(get_settings)) -> LyricsStore | None:
    """Get the persistent lyrics store.

    Uses PostgreSQL when DATABASE_URL is configured, otherwise a local SQLite
    file. A store that cannot be opened is logged and left out; resolution
    then runs without caching.

    Args:
        settings: Application settings

    Returns:
        Optional[LyricsStore]: Connected store, or None if unavailable
    """
    global _lyrics_store
    global _store_pool

    if _lyrics_store is not None:
        return _lyrics_store

    if settings.database_url:
        try:
            _store_pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=5)
            store = PostgresLyricsStore(_store_pool)
            await store.ensure_schema()
            _lyrics_store = store
            logger.info("Lyrics store connected (PostgreSQL)")
        except Exception as e:
            logger.warning(f"Failed to connect lyrics store pool: {type(e).__name__}: {e}")
            if _store_pool is not None:
                await _store_pool.close()
                _store_pool = None
        return _lyrics_store

    try:
        db_path = settings.resolved_lyrics_db_path
        sqlite_store = SQLiteLyricsStore(db_path=db_path)
        await sqlite_store.connect()
        _lyrics_store = sqlite_store
    except Exception as e:
        logger.warning(f"Failed to open SQLite lyrics store: {type(e).__name__}: {e}")
    return _lyrics_store


async def close_lyrics_store() -> None:
    """Close the lyrics store and its connection pool."""
    global _lyrics_store
    global _store_pool
    if _lyrics_store:
        await _lyrics_store.close()
        _lyrics_store = None
    if _store_pool:
        await _store_pool.close()
        _store_pool = None


def get_llm_backends(settings: Settings = Depends(get_settings)) -> dict[str, LLMBackend]:
    """Get the LLM backends whose API keys are configured, cheapest first."""
    global _llm_backends

    if _llm_backends is None:
        _llm_backends = build_backends(settings)
        if not _llm_backends:
            logger.warning("No LLM API keys set - parsing and consolidation use fallbacks only")

    return _llm_backends


async def get_provider_registry(
    settings: Settings = Depends(get_settings),
    store: LyricsStore | None = Depends(get_lyrics_store),
    backends: dict[str, LLMBackend] = Depends(get_llm_backends),
) -> ProviderRegistry:
    """Get the registry of every provider the configuration supports."""
    global _provider_registry

    if _provider_registry is None:
        _provider_registry = build_providers(settings, store=store, backends=backends)

    return _provider_registry


async def get_cache_gateway(
    settings: Settings = Depends(get_settings),
    store: LyricsStore | None = Depends(get_lyrics_store),
) -> CacheGateway:
    """Get the cache gateway in front of the lyrics store."""
    global _cache_gateway

    if _cache_gateway is None:
        _cache_gateway = CacheGateway(
            store,
            ttl_seconds=settings.cache_ttl_seconds,
            write_threshold=settings.cache_write_threshold,
            memory_cache=get_lyrics_cache(),
        )
        logger.info(f"Cache gateway initialized (store: {'enabled' if store else 'disabled'})")

    return _cache_gateway


async def get_resolver(
    settings: Settings = Depends(get_settings),
    backends: dict[str, LLMBackend] = Depends(get_llm_backends),
    registry: ProviderRegistry = Depends(get_provider_registry),
    gateway: CacheGateway = Depends(get_cache_gateway),
) -> LyricsResolver:
    """Get the lyrics resolver wired to the configured stages."""
    global _resolver

    if _resolver is None:
        consolidation_backends = [
            backends[name] for name in CONSOLIDATION_ORDER if name in backends
        ]
        _resolver = LyricsResolver(
            normalizer=QueryNormalizer(
                list(backends.values()), attempt_timeout=settings.normalizer_attempt_timeout
            ),
            dispatcher=Dispatcher(registry, DispatchPolicy.from_settings(settings)),
            consolidator=Consolidator(
                consolidation_backends,
                timeout=settings.consolidation_timeout,
                min_length=settings.consolidation_min_length,
            ),
            gateway=gateway,
            consolidate_when_synced=settings.consolidate_when_synced,
        )
        logger.info(
            f"Resolver initialized ({len(registry)} providers, "
            f"{len(_resolver.consolidator.backends)} consolidation backends)"
        )

    return _resolver


async def close_resolver() -> None:
    """Close providers and LLM backends, and drop the wired resolver."""
    global _resolver
    global _provider_registry
    global _cache_gateway
    global _llm_backends
    if _provider_registry:
        await _provider_registry.close()
        _provider_registry = None
    if _llm_backends:
        for backend in _llm_backends.values():
            await backend.close()
    _llm_backends = None
    _cache_gateway = None
    _resolver = None


def get_posthog_client(settings: Settings = Depends(get_settings)) -> Posthog | None:
    """Get PostHog client instance.

    Args:
        settings: Application settings

    Returns:
        Optional[Posthog]: PostHog client if configured and enabled, None otherwise
    """
    global _posthog_client

    if not settings.enable_telemetry:
        logger.debug("Telemetry disabled")
        return None

    if not settings.posthog_api_key:
        logger.debug("POSTHOG_API_KEY not set - telemetry disabled")
        return None

    if _posthog_client is None:
        _posthog_client = Posthog(
            project_api_key=settings.posthog_api_key,
            host=settings.posthog_host,
        )
        logger.info(f"PostHog client initialized (host: {settings.posthog_host})")

    return _posthog_client


def flush_posthog() -> None:
    """Flush any buffered PostHog events."""
    global _posthog_client
    if _posthog_client:
        _posthog_client.flush()


def shutdown_posthog() -> None:
    """Shutdown PostHog client gracefully."""
    global _posthog_client
    if _posthog_client:
        _posthog_client.shutdown()
        _posthog_client = None
        logger.info("PostHog client shutdown")
