# backend/admission/core/redis.py
"""
Async Redis client for the shared counter store.

Clients are cached per event loop; a client created on one loop is never
handed to another.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional
import weakref

from redis.asyncio import Redis as AsyncRedis

from .config import settings
from .exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

_clients_by_loop: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, AsyncRedis]" = (
    weakref.WeakKeyDictionary()
)
_locks_by_loop: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


async def get_redis(redis_url: Optional[str] = None) -> AsyncRedis:
    """
    Get or create the async Redis client for the running loop.

    Raises:
        StoreUnavailable: the store did not answer PING.
    """
    loop = asyncio.get_running_loop()

    existing = _clients_by_loop.get(loop)
    if existing is not None:
        return existing

    lock = _locks_by_loop.get(loop)
    if lock is None:
        lock = asyncio.Lock()
        _locks_by_loop[loop] = lock

    async with lock:
        existing = _clients_by_loop.get(loop)
        if existing is not None:
            return existing

        url = redis_url or settings.redis_url
        client = AsyncRedis.from_url(url, encoding="utf-8", decode_responses=True)
        try:
            await client.ping()
        except Exception as exc:
            logger.error("[REDIS-RL] Async Redis client FAILED to connect: %s", exc)
            with contextlib.suppress(Exception):
                await client.aclose()
            raise StoreUnavailable(
                "Redis unavailable", details={"url": url}
            ) from exc

        _clients_by_loop[loop] = client
        logger.info("[REDIS-RL] Async Redis client initialized and connected")
        return client


async def close_async_rate_limit_redis_client() -> None:
    """Close the client bound to the running loop, if any."""
    loop = asyncio.get_running_loop()

    client = _clients_by_loop.pop(loop, None)
    if client is None:
        return

    try:
        await client.aclose()
        with contextlib.suppress(Exception):
            await client.connection_pool.disconnect()
    finally:
        logger.info("[REDIS-RL] Async Redis client closed")
