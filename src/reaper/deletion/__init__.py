"""
Reaper deletion: per-policy rate limiting, retry with backoff and batching.
"""

from reaper.deletion.backoff import DEFAULT_BACKOFF, BackoffConfig, delete_with_backoff
from reaper.deletion.batch import BatchDeleter, BatchResult
from reaper.deletion.rate_limit import RateLimiterRegistry, TokenBucket

__all__ = [
    "TokenBucket",
    "RateLimiterRegistry",
    "BackoffConfig",
    "DEFAULT_BACKOFF",
    "delete_with_backoff",
    "BatchDeleter",
    "BatchResult",
]
