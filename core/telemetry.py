"""Telemetry module for tracking resolution performance with PostHog."""

import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from posthog import Posthog

logger = logging.getLogger(__name__)

DISTINCT_ID = "lyrics-resolver-service"


@dataclass
class StepResult:
    """Result of a tracked step."""

    duration_ms: float
    success: bool = True
    error_type: str | None = None


@dataclass
class RequestTelemetry:
    """Tracks performance metrics for a single resolution."""

    steps: dict[str, StepResult] = field(default_factory=dict)
    provider_outcomes: dict[str, str] = field(default_factory=dict)
    llm_calls: int = 0
    start_time: float = field(default_factory=time.perf_counter)

    @contextmanager
    def track_step(self, step_name: str):
        """Context manager to time a step.

        Args:
            step_name: Name of the step being tracked

        Yields:
            None
        """
        step_start = time.perf_counter()
        error_type = None

        try:
            yield
        except Exception as e:
            error_type = type(e).__name__
            raise
        finally:
            self.steps[step_name] = StepResult(
                duration_ms=(time.perf_counter() - step_start) * 1000,
                success=error_type is None,
                error_type=error_type,
            )

    def record_provider(self, provider: str, outcome: str) -> None:
        """Record how a dispatched provider finished ("found", "empty", "timeout", ...)."""
        self.provider_outcomes[provider] = outcome

    def record_llm_call(self) -> None:
        """Increment the LLM call counter."""
        self.llm_calls += 1

    def get_total_duration_ms(self) -> float:
        """Get total elapsed time since telemetry was created."""
        return (time.perf_counter() - self.start_time) * 1000

    def get_step_timings(self) -> dict[str, float]:
        """Get timing for each step in milliseconds."""
        return {f"{name}_ms": step.duration_ms for name, step in self.steps.items()}

    def send_to_posthog(
        self,
        posthog_client: Posthog,
        extra_properties: dict[str, Any] | None = None,
    ) -> None:
        """Send all telemetry events to PostHog.

        Args:
            posthog_client: PostHog client instance
            extra_properties: Additional properties to include in the resolved event
        """
        extra_properties = extra_properties or {}

        for step_name, step_result in self.steps.items():
            posthog_client.capture(
                distinct_id=DISTINCT_ID,
                event=f"lyrics_{step_name}",
                properties={
                    "step": step_name,
                    "duration_ms": round(step_result.duration_ms, 2),
                    "success": step_result.success,
                    "error_type": step_result.error_type,
                },
            )

        posthog_client.capture(
            distinct_id=DISTINCT_ID,
            event="lyrics_resolved",
            properties={
                "total_duration_ms": round(self.get_total_duration_ms(), 2),
                "steps": self.get_step_timings(),
                "providers": self.provider_outcomes.copy(),
                "llm_calls": self.llm_calls,
                "cache": (get_cache_stats() or _empty_cache_stats()).copy(),
                **extra_properties,
            },
        )

        logger.debug(
            f"Sent telemetry: {len(self.steps)} steps, total {self.get_total_duration_ms():.1f}ms"
        )


# ---------------------------------------------------------------------------
# Per-request cache stats via ContextVar
# ---------------------------------------------------------------------------

_cache_stats_var: ContextVar[dict] = ContextVar("cache_stats")


def _empty_cache_stats() -> dict:
    return {
        "memory_hits": 0,
        "store_hits": 0,
        "store_misses": 0,
        "stale_hits": 0,
        "writes": 0,
        "skipped_writes": 0,
        "store_time_ms": 0.0,
    }


def init_cache_stats() -> None:
    """Initialize cache stats for the current request context."""
    _cache_stats_var.set(_empty_cache_stats())


def record_cache_event(name: str) -> None:
    """Increment one cache counter ("memory_hits", "store_misses", ...) for this request."""
    stats = _cache_stats_var.get(None)
    if stats is not None and name in stats:
        stats[name] += 1


def record_store_time(ms: float) -> None:
    """Accumulate lyrics store query time in the current request context."""
    stats = _cache_stats_var.get(None)
    if stats is not None:
        stats["store_time_ms"] += ms


def get_cache_stats() -> dict | None:
    """Get cache stats for the current request context, or None if not initialized."""
    return _cache_stats_var.get(None)
