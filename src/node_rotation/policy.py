"""
Fixed-interval retry for the polling steps.

One combinator serves both policies used by the rotation (30s x 20 for
cluster size, 120s x 195 for shard migration). ``max_attempts`` counts
total calls of the operation, so the last poll happens on attempt
``max_attempts`` and no sleep follows it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from .errors import ConvergenceTimeout

R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]
RetryHook = Callable[[int, BaseException], None]


def retry_everything(exc: BaseException) -> bool:
    """Blanket classifier: every failure during a wait is treated alike."""
    return True


async def retry_fixed_interval(
    operation: Callable[[], Awaitable[R]],
    interval_sec: float,
    max_attempts: int,
    *,
    label: str = "operation",
    classify_retryable: Callable[[BaseException], bool] = retry_everything,
    sleep: Sleep = asyncio.sleep,
    on_retry: Optional[RetryHook] = None,
) -> R:
    """Call ``operation`` until it returns, sleeping ``interval_sec`` between tries.

    Raises ConvergenceTimeout (chained from the last error) once
    ``max_attempts`` calls have failed. Errors the classifier rejects
    propagate immediately.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if interval_sec < 0:
        raise ValueError("interval_sec must be >= 0")

    last: BaseException | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if not classify_retryable(exc):
                raise
            last = exc
            if on_retry:
                on_retry(attempt, exc)
            if attempt == max_attempts:
                break
            logger.debug(
                f"{label} attempt {attempt}/{max_attempts} failed "
                f"({type(exc).__name__}: {exc}); retrying in {interval_sec:g}s"
            )
            await sleep(interval_sec)

    logger.warning(f"{label} exhausted {max_attempts} attempts")
    raise ConvergenceTimeout(label, max_attempts, last) from last


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval retry budget attached to an orchestrator state."""

    interval_sec: float
    max_attempts: int
    classify_retryable: Callable[[BaseException], bool] = field(default=retry_everything)

    @property
    def budget_sec(self) -> float:
        """Worst-case time spent sleeping between polls."""
        return self.interval_sec * (self.max_attempts - 1)

    async def run(
        self,
        operation: Callable[[], Awaitable[R]],
        *,
        label: str = "operation",
        sleep: Sleep = asyncio.sleep,
        on_retry: Optional[RetryHook] = None,
    ) -> R:
        return await retry_fixed_interval(
            operation,
            self.interval_sec,
            self.max_attempts,
            label=label,
            classify_retryable=self.classify_retryable,
            sleep=sleep,
            on_retry=on_retry,
        )


CLUSTER_SIZE_POLICY = RetryPolicy(interval_sec=30, max_attempts=20)
SHARD_MIGRATION_POLICY = RetryPolicy(interval_sec=120, max_attempts=195)
