"""Concurrent provider fan-out with per-provider timeouts and a global deadline.

Every selected provider starts at once. Results are gathered as they
complete; a provider that fails only loses its own slot. Dispatch stops
early once an authoritative provider returns a strong candidate, and
whatever is still running when dispatch stops is cancelled and ignored.
The collected candidates are ranked before they are returned, so callers
never see completion order.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from config.settings import Settings
from core.exceptions import NoResultError, ParseError
from core.logging import log_fields
from core.telemetry import RequestTelemetry
from lyrics.models import LanguageTag, LyricsCandidate, Query, RankedResult
from lyrics.ranking import rank
from providers.base import Provider, ProviderResult
from providers.registry import LLM_SEARCH_PREFIX, ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass
class DispatchPolicy:
    """Timing and early-exit knobs for one fan-out."""

    deadline: float = 35.0
    """Global budget in seconds; providers still running are abandoned."""

    default_timeout: float = 10.0
    """Per-provider budget for providers that declare no timeout."""

    early_exit_confidence: float = 0.8
    early_exit_min_length: int = 500

    @classmethod
    def from_settings(cls, settings: Settings) -> "DispatchPolicy":
        return cls(
            deadline=settings.dispatch_deadline,
            default_timeout=settings.provider_timeout,
            early_exit_confidence=settings.early_exit_confidence,
            early_exit_min_length=settings.early_exit_min_length,
        )


@dataclass
class DispatchReport:
    """Ranked candidates plus how each provider finished."""

    ranked: RankedResult
    outcomes: dict[str, str] = field(default_factory=dict)
    early_exit: str | None = None
    elapsed_ms: float = 0.0

    @property
    def found(self) -> bool:
        return bool(self.ranked.candidates)


class Dispatcher:
    """Runs the language's provider set and ranks what comes back."""

    def __init__(self, registry: ProviderRegistry, policy: DispatchPolicy | None = None):
        self.registry = registry
        self.policy = policy or DispatchPolicy()

    def select(self, language: LanguageTag) -> list[Provider]:
        return self.registry.select(language)

    def is_early_exit(self, provider: Provider, candidate: LyricsCandidate) -> bool:
        return (
            provider.authoritative
            and candidate.confidence > self.policy.early_exit_confidence
            and candidate.length > self.policy.early_exit_min_length
        )

    async def _call(self, provider: Provider, query: Query) -> ProviderResult:
        timeout = provider.timeout or self.policy.default_timeout
        try:
            return await asyncio.wait_for(provider.lookup(query), timeout=timeout)
        except TimeoutError:
            logger.warning(log_fields(provider=provider.id, outcome="timeout", limit_s=float(timeout)))
            return ProviderResult(
                provider=provider.id,
                candidate=None,
                outcome="timeout",
                elapsed_ms=int(timeout * 1000),
            )

    async def dispatch(
        self,
        query: Query,
        language: LanguageTag,
        telemetry: RequestTelemetry | None = None,
    ) -> DispatchReport:
        """Fan out to the providers for ``language`` and rank the results.

        Never raises for provider failures; an empty report means nothing
        was found.
        """
        if not query.artist.strip() or not query.title.strip():
            raise ParseError(
                "Query needs both artist and title before dispatch",
                {"artist": query.artist, "title": query.title},
            )

        start = time.perf_counter()
        providers = self.select(language)
        if not providers:
            logger.warning(f"No providers configured for language {language}")
            return DispatchReport(ranked=RankedResult(candidates=[]))

        logger.info(
            f"Dispatching '{query.artist} - {query.title}' ({language}) to "
            f"{', '.join(provider.id for provider in providers)}"
        )

        tasks: dict[asyncio.Task, int] = {
            asyncio.create_task(self._call(provider, query), name=f"provider:{provider.id}"): index
            for index, provider in enumerate(providers)
        }
        results: dict[int, ProviderResult] = {}
        outcomes: dict[str, str] = {}
        early_exit: str | None = None

        loop = asyncio.get_running_loop()
        stop_at = loop.time() + self.policy.deadline
        pending = set(tasks)

        try:
            while pending:
                remaining = stop_at - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    index = tasks[task]
                    provider = providers[index]
                    if task.cancelled():
                        outcomes[provider.id] = "cancelled"
                        continue
                    error = task.exception()
                    if error is not None:
                        # lookup() converts failures itself; this is a provider bug.
                        logger.error(f"Provider {provider.id} escaped its boundary: {error!r}")
                        outcomes[provider.id] = f"error:{type(error).__name__}"
                        continue

                    result = task.result()
                    results[index] = result
                    outcomes[provider.id] = result.outcome
                    if (
                        early_exit is None
                        and result.candidate is not None
                        and self.is_early_exit(provider, result.candidate)
                    ):
                        early_exit = provider.id

                if early_exit is not None:
                    logger.info(f"Early exit on {early_exit}, abandoning {len(pending)} providers")
                    break
        finally:
            # Abandoned calls finish (or not) in the background; their results are dropped.
            for task in pending:
                task.cancel()
                outcomes[providers[tasks[task]].id] = "cancelled" if early_exit else "deadline"

        candidates = [
            results[index].candidate
            for index in sorted(results)
            if results[index].candidate is not None
        ]
        ranked = rank(candidates, query.artist, query.title)
        ordered_outcomes = {provider.id: outcomes.get(provider.id, "deadline") for provider in providers}

        if telemetry is not None:
            for provider_id, outcome in ordered_outcomes.items():
                telemetry.record_provider(provider_id, outcome)
                if provider_id.startswith(LLM_SEARCH_PREFIX):
                    telemetry.record_llm_call()

        report = DispatchReport(
            ranked=ranked,
            outcomes=ordered_outcomes,
            early_exit=early_exit,
            elapsed_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(
            f"Dispatch finished in {report.elapsed_ms:.0f}ms: "
            f"{len(ranked.candidates)} candidates, best="
            f"{ranked.best.source if ranked.candidates else None}"
        )
        return report

    async def resolve(self, query: Query, language: LanguageTag) -> RankedResult:
        """Dispatch and return the ranked result.

        Raises:
            NoResultError: If every provider failed or returned nothing
        """
        report = await self.dispatch(query, language)
        if not report.found:
            raise NoResultError(
                f"No lyrics found for {query.artist} - {query.title}",
                {"outcomes": report.outcomes},
            )
        return report.ranked
