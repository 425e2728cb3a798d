"""Ordered fallback strategies with a single "first success" combinator.

Query parsing tries a chain of LLM backends and then a deterministic parser;
consolidation races several LLM backends and keeps the first usable answer.
Both are expressed as an ordered list of ``Attempt`` objects evaluated by
``first_success``, sequentially or concurrently.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AttemptStatus(StrEnum):
    """How a single attempt ended.

    Recorded per attempt so telemetry shows why a chain fell through.
    """

    ACCEPTED = "accepted"
    """Returned a value that passed the accept predicate."""

    REJECTED = "rejected"
    """Returned a value that failed the accept predicate (or None)."""

    FAILED = "failed"
    """Raised an exception."""

    TIMEOUT = "timeout"
    """Exceeded its own budget or the shared deadline."""

    CANCELLED = "cancelled"
    """Abandoned because another attempt was accepted first."""


# Type aliases for attempt functions
AttemptFunc = Callable[[], Awaitable[T | None]]
"""Zero-argument coroutine factory; a fresh coroutine is created per run."""

AcceptFunc = Callable[[T], bool]
"""Predicate deciding whether an attempt's value counts as success."""


@dataclass
class Attempt(Generic[T]):
    """One strategy in an ordered chain."""

    name: str
    """Identifier used for logging and telemetry."""

    run: AttemptFunc
    """Coroutine factory performing the attempt."""

    timeout: float | None = None
    """Per-attempt budget in seconds (None for unbounded)."""


@dataclass
class FirstSuccess(Generic[T]):
    """Outcome of evaluating a chain of attempts."""

    value: T | None = None
    """The accepted value, or None when nothing was accepted."""

    winner: str | None = None
    """Name of the attempt that produced ``value``."""

    outcomes: dict[str, AttemptStatus] = field(default_factory=dict)
    """Status of every attempt that was started, keyed by name."""

    elapsed_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.winner is not None


def _not_none(value) -> bool:
    return value is not None


async def _run_attempt(attempt: Attempt[T]) -> T | None:
    if attempt.timeout is None:
        return await attempt.run()
    return await asyncio.wait_for(attempt.run(), timeout=attempt.timeout)


# =============================================================================
# Sequential evaluation
# =============================================================================


async def _first_success_sequential(
    attempts: list[Attempt[T]],
    accept: AcceptFunc,
    result: FirstSuccess[T],
) -> FirstSuccess[T]:
    for attempt in attempts:
        try:
            value = await _run_attempt(attempt)
        except TimeoutError:
            logger.info(f"Attempt '{attempt.name}' timed out after {attempt.timeout}s")
            result.outcomes[attempt.name] = AttemptStatus.TIMEOUT
            continue
        except Exception as e:
            logger.warning(f"Attempt '{attempt.name}' failed: {type(e).__name__}: {e}")
            result.outcomes[attempt.name] = AttemptStatus.FAILED
            continue

        if value is not None and accept(value):
            result.outcomes[attempt.name] = AttemptStatus.ACCEPTED
            result.value = value
            result.winner = attempt.name
            return result

        logger.debug(f"Attempt '{attempt.name}' returned an unusable value")
        result.outcomes[attempt.name] = AttemptStatus.REJECTED

    return result


# =============================================================================
# Concurrent evaluation
# =============================================================================


async def _first_success_concurrent(
    attempts: list[Attempt[T]],
    accept: AcceptFunc,
    result: FirstSuccess[T],
    deadline: float | None,
) -> FirstSuccess[T]:
    tasks: dict[asyncio.Task, Attempt[T]] = {
        asyncio.create_task(_run_attempt(attempt), name=attempt.name): attempt
        for attempt in attempts
    }
    order = {task: index for index, task in enumerate(tasks)}
    pending = set(tasks)
    loop = asyncio.get_running_loop()
    stop_at = loop.time() + deadline if deadline is not None else None

    try:
        while pending:
            remaining = None if stop_at is None else max(stop_at - loop.time(), 0)
            if remaining == 0:
                break
            done, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            if not done:
                break

            # Ties inside one wakeup resolve by declaration order.
            for task in sorted(done, key=order.__getitem__):
                attempt = tasks[task]
                if task.cancelled():
                    result.outcomes[attempt.name] = AttemptStatus.CANCELLED
                    continue
                error = task.exception()
                if isinstance(error, TimeoutError):
                    result.outcomes[attempt.name] = AttemptStatus.TIMEOUT
                    continue
                if error is not None:
                    logger.warning(
                        f"Attempt '{attempt.name}' failed: {type(error).__name__}: {error}"
                    )
                    result.outcomes[attempt.name] = AttemptStatus.FAILED
                    continue

                value = task.result()
                if result.winner is None and value is not None and accept(value):
                    result.outcomes[attempt.name] = AttemptStatus.ACCEPTED
                    result.value = value
                    result.winner = attempt.name
                else:
                    result.outcomes[attempt.name] = AttemptStatus.REJECTED

            if result.winner is not None:
                break
    finally:
        for task in pending:
            task.cancel()
            name = tasks[task].name
            result.outcomes[name] = (
                AttemptStatus.CANCELLED if result.winner is not None else AttemptStatus.TIMEOUT
            )

    return result


async def first_success(
    attempts: list[Attempt[T]],
    accept: AcceptFunc | None = None,
    concurrent: bool = False,
    deadline: float | None = None,
) -> FirstSuccess[T]:
    """Evaluate attempts until one produces an accepted value.

    Attempts never raise past this function: exceptions and timeouts are
    recorded in ``outcomes`` and the chain moves on.

    Args:
        attempts: Strategies in priority order
        accept: Predicate for a usable value (defaults to "not None")
        concurrent: Start every attempt at once and keep the first accepted
            completion, cancelling the rest. Otherwise run them one by one.
        deadline: Overall budget in seconds for concurrent evaluation

    Returns:
        FirstSuccess with the accepted value (if any) and per-attempt outcomes
    """
    accept = accept or _not_none
    result: FirstSuccess[T] = FirstSuccess()
    start = time.perf_counter()

    if not attempts:
        return result

    if concurrent:
        await _first_success_concurrent(attempts, accept, result, deadline)
    else:
        await _first_success_sequential(attempts, accept, result)

    result.elapsed_ms = (time.perf_counter() - start) * 1000
    if result.winner:
        logger.debug(f"First success: '{result.winner}' after {result.elapsed_ms:.0f}ms")
    return result
