"""Sliding-window rate limiter for governed tool calls.

One limiter instance per operation class (standard, search, file, bulk).
Each limiter keeps an ordered list of admission timestamps per key and
admits a call only while fewer than ``max_requests`` timestamps fall
inside the trailing window.  Admission is a blocking check: callers are
suspended in place for burst and pacing delays, never queued.

In-memory only; state resets on process restart.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeVar

import structlog

from jiragate.core.exceptions import RateLimitExceededError
from jiragate.core.housekeeping import PeriodicTask

logger = structlog.get_logger()

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]


class OperationClass(StrEnum):
    """Rate-limit policy bucket."""

    STANDARD = "standard"
    SEARCH = "search"
    FILE = "file"
    BULK = "bulk"


@dataclass(frozen=True)
class RateLimitStats:
    requests: int
    remaining: int


class SlidingWindowRateLimiter:
    """Per-key sliding-window admission with burst penalty and pacing.

    Args:
        max_requests: Admissions allowed per key inside the window.
        window_s: Window length in seconds.
        delay_s: Pacing delay applied once a key has more than one
            admission on record.  The burst penalty is twice this.
        burst_limit: Admissions inside the last tenth of the window that
            trigger the burst penalty.  Defaults to ``max_requests // 4``.
        max_keys: Tracked-key cap enforced by cleanup.
        cleanup_interval_s: Interval of both the background task and the
            opportunistic cleanup at the top of ``check_and_wait``.
    """

    def __init__(
        self,
        max_requests: int,
        *,
        window_s: float = 60.0,
        delay_s: float = 0.1,
        burst_limit: int | None = None,
        max_keys: int = 1000,
        cleanup_interval_s: float = 60.0,
        name: str = "rate_limiter",
        clock: ClockFn = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.name = name
        self.max_requests = max_requests
        self.window_s = window_s
        self.delay_s = delay_s
        self.burst_limit = burst_limit if burst_limit is not None else max(1, max_requests // 4)
        self.max_keys = max_keys
        self.cleanup_interval_s = cleanup_interval_s
        self._clock = clock
        self._sleep = sleep
        self._requests: dict[str, list[float]] = {}
        self._last_cleanup = clock()
        self._cleanup_task = PeriodicTask(f"{name}_cleanup", cleanup_interval_s, self.cleanup)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def check_and_wait(self, key: str) -> None:
        """Admit one call for *key*, suspending for burst/pacing delays.

        Raises:
            RateLimitExceededError: The window for *key* is full.
        """
        now = self._clock()
        if now - self._last_cleanup > self.cleanup_interval_s:
            self.cleanup()

        window_start = now - self.window_s
        history = [t for t in self._requests.get(key, ()) if t > window_start]

        if len(history) >= self.max_requests:
            self._requests[key] = history
            wait_s = max(0.0, history[0] + self.window_s - now)
            wait_seconds = math.ceil(wait_s)
            logger.info(
                "rate_limit_exceeded",
                limiter=self.name,
                key=key,
                requests=len(history),
                wait_seconds=wait_seconds,
            )
            raise RateLimitExceededError(
                f"Rate limit exceeded. Wait {wait_seconds} seconds before retrying.",
                wait_seconds=wait_seconds,
            )

        burst_start = now - self.window_s / 10
        recent = sum(1 for t in history if t > burst_start)
        burst = recent >= self.burst_limit

        # Recorded before any suspension.
        history.append(now)
        self._requests[key] = history

        if burst:
            logger.debug("rate_limit_burst_penalty", limiter=self.name, key=key, recent=recent)
            await self._sleep(self.delay_s * 2)
        if len(history) > 1:
            await self._sleep(self.delay_s)

    def get_stats(self, key: str) -> RateLimitStats:
        window_start = self._clock() - self.window_s
        used = sum(1 for t in self._requests.get(key, ()) if t > window_start)
        return RateLimitStats(requests=used, remaining=max(0, self.max_requests - used))

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    @property
    def tracked_keys(self) -> int:
        return len(self._requests)

    def cleanup(self) -> None:
        """Prune expired timestamps, drop empty keys, enforce the key cap."""
        now = self._clock()
        window_start = now - self.window_s
        for key in list(self._requests):
            kept = [t for t in self._requests[key] if t > window_start]
            if kept:
                self._requests[key] = kept
            else:
                del self._requests[key]

        excess = len(self._requests) - self.max_keys
        if excess > 0:
            by_activity = sorted(self._requests.items(), key=lambda kv: max(kv[1]))
            for key, _ in by_activity[:excess]:
                del self._requests[key]
            logger.debug("rate_limit_keys_evicted", limiter=self.name, evicted=excess)

        self._last_cleanup = now

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._requests.clear()
        else:
            self._requests.pop(key, None)

    def start(self) -> None:
        self._cleanup_task.start()

    def close(self) -> None:
        self._cleanup_task.cancel()
        self._requests.clear()


# ---------------------------------------------------------------------------
# Pre-configured operation classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    burst_limit: int
    delay_s: float
    max_keys: int
    cleanup_interval_s: float


DEFAULT_POLICIES: dict[OperationClass, RateLimitPolicy] = {
    OperationClass.STANDARD: RateLimitPolicy(60, 15, 0.05, 1000, 60.0),
    OperationClass.SEARCH: RateLimitPolicy(30, 8, 0.1, 500, 60.0),
    OperationClass.FILE: RateLimitPolicy(5, 2, 0.5, 50, 180.0),
    OperationClass.BULK: RateLimitPolicy(10, 3, 0.2, 100, 120.0),
}


class RateLimiterPool:
    """One :class:`SlidingWindowRateLimiter` per operation class.

    ``max_requests`` maps an operation class to a configured per-minute
    limit; burst, pacing and key caps stay at the class defaults.
    """

    def __init__(
        self,
        max_requests: dict[OperationClass, int] | None = None,
        *,
        clock: ClockFn = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        overrides = max_requests or {}
        self._limiters: dict[OperationClass, SlidingWindowRateLimiter] = {}
        for op_class, policy in DEFAULT_POLICIES.items():
            self._limiters[op_class] = SlidingWindowRateLimiter(
                overrides.get(op_class, policy.max_requests),
                window_s=60.0,
                delay_s=policy.delay_s,
                burst_limit=policy.burst_limit,
                max_keys=policy.max_keys,
                cleanup_interval_s=policy.cleanup_interval_s,
                name=f"{op_class.value}_limiter",
                clock=clock,
                sleep=sleep,
            )

    def get(self, op_class: OperationClass | str) -> SlidingWindowRateLimiter:
        return self._limiters[OperationClass(op_class)]

    def start(self) -> None:
        for limiter in self._limiters.values():
            limiter.start()

    def close(self) -> None:
        for limiter in self._limiters.values():
            limiter.close()


async def with_rate_limit(
    limiter: SlidingWindowRateLimiter,
    key: str,
    operation: Callable[[], Awaitable[T]],
) -> T:
    """Admit *key* on *limiter*, then await *operation*."""
    await limiter.check_and_wait(key)
    return await operation()
