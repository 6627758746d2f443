"""Batched execution for bulk tool operations.

Items are processed in fixed-size batches.  Calls inside a batch run
concurrently; batches are separated by a short delay.  Every item is
settled: a failing item never aborts the others.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from jiragate.core.gate.rate_limiter import SlidingWindowRateLimiter

logger = structlog.get_logger()

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class SettledResult(Generic[T]):
    """Outcome of one item in a batch run."""

    item: Any
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_in_batches(
    items: Sequence[T],
    processor: Callable[[T], Awaitable[R]],
    *,
    batch_size: int = 5,
    delay_s: float = 0.1,
    limiter: SlidingWindowRateLimiter | None = None,
    key_prefix: str = "bulk_operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[SettledResult[R]]:
    """Process *items* in batches and return one settled result per item, in order."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    async def _one(batch_index: int, item_index: int, item: T) -> R:
        if limiter is not None:
            await limiter.check_and_wait(f"{key_prefix}_{batch_index}_{item_index}")
        return await processor(item)

    results: list[SettledResult[R]] = []
    for batch_index, start in enumerate(range(0, len(items), batch_size)):
        if batch_index:
            await sleep(delay_s)
        batch = items[start : start + batch_size]
        outcomes = await asyncio.gather(
            *(_one(batch_index, i, item) for i, item in enumerate(batch)),
            return_exceptions=True,
        )
        for item, outcome in zip(batch, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                results.append(SettledResult(item=item, error=outcome))
            else:
                results.append(SettledResult(item=item, value=outcome))

    failed = sum(1 for r in results if not r.ok)
    logger.debug("bulk_batches_completed", items=len(items), failed=failed)
    return results
