"""
Sorted-set storage for sliding-window counters.

Each (tenant, identity) pair owns one sorted set whose scores are request
arrival times in whole seconds. Every method is a single Redis round trip
(or one MULTI/EXEC pipeline); no cross-call isolation is attempted, so two
concurrent evaluations for one identity may both be admitted at the limit.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Tuple

from redis.exceptions import RedisError
from ulid import ULID

from admission.core.exceptions import StoreUnavailable

POLICY_PREFIX = "policy"
RATE_PREFIX = "rate"


def policy_key(tenant: str) -> str:
    return f"{POLICY_PREFIX}:{tenant}"


def rate_key(tenant: str, identity: str) -> str:
    return f"{RATE_PREFIX}:{tenant}:{identity}"


@asynccontextmanager
async def store_call(operation: str, key: str) -> AsyncIterator[None]:
    """Re-raise Redis and socket failures as StoreUnavailable."""
    try:
        yield
    except (RedisError, OSError) as exc:
        raise StoreUnavailable(
            f"Redis {operation} failed", details={"key": key, "error": str(exc)}
        ) from exc


class SlidingWindowStore:
    """Prune, count, and record timestamp entries for one counter key."""

    def __init__(self, redis: Any) -> None:
        self.redis = redis

    async def prune(self, key: str, previous_window_start: int) -> int:
        """Remove entries strictly older than ``previous_window_start``."""
        async with store_call("prune", key):
            removed = await self.redis.zremrangebyscore(key, "-inf", f"({previous_window_start}")
        return int(removed or 0)

    async def count_windows(
        self, key: str, previous_window_start: int, current_window_start: int, now: int
    ) -> Tuple[int, int]:
        """Return (previous_count, current_count); both queries run concurrently."""
        async with store_call("count", key):
            results = await asyncio.gather(
                self.redis.zcount(key, previous_window_start, f"({current_window_start}"),
                self.redis.zcount(key, current_window_start, now),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
        previous_count, current_count = results
        return int(previous_count), int(current_count)

    async def record(self, key: str, now: int, ttl_seconds: int) -> None:
        """Add an entry at ``now`` and refresh the key's expiry."""
        # Same-second requests need distinct members; the score carries the time.
        member = f"{now}-{ULID()}"
        async with store_call("record", key):
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zadd(key, {member: now})
                pipe.expire(key, ttl_seconds)
                await pipe.execute()

    async def reset(self, key: str) -> bool:
        async with store_call("reset", key):
            deleted = await self.redis.delete(key)
        return bool(deleted)


__all__ = [
    "SlidingWindowStore",
    "policy_key",
    "rate_key",
    "store_call",
]
