"""Admission control for governed tool calls: rate limiting and bulk batching."""

from jiragate.core.gate.bulk import SettledResult, run_in_batches
from jiragate.core.gate.rate_limiter import (
    OperationClass,
    RateLimiterPool,
    RateLimitStats,
    SlidingWindowRateLimiter,
    with_rate_limit,
)

__all__ = [
    "OperationClass",
    "RateLimitStats",
    "RateLimiterPool",
    "SettledResult",
    "SlidingWindowRateLimiter",
    "run_in_batches",
    "with_rate_limit",
]
