"""Static per-language provider table and the registry that applies it."""

import logging

from cache.store import LyricsStore
from config.settings import Settings
from llm.client import LLMBackend
from lyrics.models import LanguageTag
from providers.base import Provider
from providers.database import DatabaseProvider
from providers.genius import GeniusProvider
from providers.korean import BugsProvider, GenieProvider, MelonProvider
from providers.llm_search import LLMSearchProvider
from providers.lrclib import LrclibProvider

logger = logging.getLogger(__name__)

LLM_SEARCH_PREFIX = "llm_search:"
LLM_SEARCH_ALL = f"{LLM_SEARCH_PREFIX}*"

# Korean queries add the Korean-market platforms and skip generic web scraping.
_DEFAULT_ROUTE = ("database", "lrclib", "genius", LLM_SEARCH_ALL)
PROVIDER_TABLE: dict[LanguageTag, tuple[str, ...]] = {
    LanguageTag.KO: ("database", "lrclib", "melon", "bugs", "genie", LLM_SEARCH_ALL),
    LanguageTag.JA: _DEFAULT_ROUTE,
    LanguageTag.ZH: _DEFAULT_ROUTE,
    LanguageTag.EN: _DEFAULT_ROUTE,
    LanguageTag.UNKNOWN: _DEFAULT_ROUTE,
}

# LLM search backends in preference order; Perplexity searches the live web.
LLM_SEARCH_ORDER = ("perplexity", "openai", "anthropic", "gemini", "groq")


class ProviderRegistry:
    """Holds the constructed providers and picks the set for a language."""

    def __init__(
        self,
        providers: list[Provider],
        table: dict[LanguageTag, tuple[str, ...]] | None = None,
    ):
        self.providers: dict[str, Provider] = {provider.id: provider for provider in providers}
        self.table = table or PROVIDER_TABLE

    def __len__(self) -> int:
        return len(self.providers)

    def get(self, provider_id: str) -> Provider | None:
        return self.providers.get(provider_id)

    def select(self, language: LanguageTag) -> list[Provider]:
        """Providers routed for ``language``, in table order.

        Table entries without a constructed provider (no API key, no store)
        are skipped.
        """
        selected: list[Provider] = []
        for entry in self.table.get(language, self.table[LanguageTag.UNKNOWN]):
            if entry == LLM_SEARCH_ALL:
                matches = [
                    provider
                    for provider_id, provider in self.providers.items()
                    if provider_id.startswith(LLM_SEARCH_PREFIX)
                ]
            else:
                provider = self.providers.get(entry)
                matches = [provider] if provider else []
            selected.extend(provider for provider in matches if provider.supports(language))
        return selected

    async def close(self) -> None:
        for provider in self.providers.values():
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Error closing provider {provider.id}: {e}")


def build_providers(
    settings: Settings,
    store: LyricsStore | None = None,
    backends: dict[str, LLMBackend] | None = None,
) -> ProviderRegistry:
    """Construct every provider the current configuration can support."""
    providers: list[Provider] = []
    if store is not None:
        providers.append(DatabaseProvider(store, ttl_seconds=settings.cache_ttl_seconds))
    providers.extend(
        [LrclibProvider(), MelonProvider(), BugsProvider(), GenieProvider(), GeniusProvider()]
    )

    backends = backends or {}
    for name in LLM_SEARCH_ORDER:
        if name in backends:
            providers.append(LLMSearchProvider(backends[name]))

    registry = ProviderRegistry(providers)
    logger.info(f"Providers configured: {', '.join(registry.providers)}")
    return registry
