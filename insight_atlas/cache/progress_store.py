"""Key/value store for progress snapshots and rate-limit counters.

Redis when configured and reachable, otherwise an in-process MemoryCache.
Backend failures never reach callers: each operation logs a warning and
falls back to memory with the same TTL semantics.

Usage:
    store = ProgressStore()
    await store.init()
    await store.set("progress:1", payload, ttl=3600)
    ...
    await store.shutdown()
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Awaitable, Callable, Optional, TypeVar

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from insight_atlas.models import ProgressSnapshot

from .memory import MemoryCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How often expired memory entries are purged
SWEEP_INTERVAL_SECONDS = 60

# Default TTL for progress snapshots (1 hour)
DEFAULT_PROGRESS_TTL_SECONDS = 3600

BACKEND_ERRORS = (RedisError, OSError)


class ProgressStore:
    """Cache service with explicit lifecycle.

    Configuration (env vars):
    - REDIS_URL: Redis connection URL. Unset means memory-only.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Any = None,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        memory: Optional[MemoryCache] = None,
    ):
        """Initialize the store. No I/O happens until `init()`.

        Args:
            redis_url: Redis URL; defaults to REDIS_URL from the environment.
            client: Pre-built async Redis client (tests, shared pools).
            sweep_interval: Seconds between memory sweeps.
            memory: Fallback cache to use (tests inject one with a fake clock).
        """
        self._redis_url = redis_url if redis_url is not None else os.environ.get("REDIS_URL")
        self._client = client
        self._redis: Any = None
        self._memory = memory if memory is not None else MemoryCache()
        self._sweep_interval = sweep_interval
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def backend(self) -> str:
        """Active primary backend: "redis" or "memory"."""
        return "redis" if self._redis is not None else "memory"

    @property
    def memory(self) -> MemoryCache:
        return self._memory

    async def init(self) -> None:
        """Connect to Redis (if configured) and start the sweep task."""
        client = self._client
        if client is None and self._redis_url:
            client = redis.from_url(self._redis_url, decode_responses=True)

        if client is not None:
            try:
                await client.ping()
                self._redis = client
                logger.info("Progress store connected to Redis")
            except BACKEND_ERRORS as e:
                logger.warning(f"Redis unavailable, using in-memory cache: {e}")
                self._redis = None
        else:
            logger.info("REDIS_URL not set, using in-memory cache")

        await self.start_sweep_task()

    async def shutdown(self) -> None:
        """Stop the sweep task and close the Redis connection."""
        await self.stop_sweep_task()
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except BACKEND_ERRORS as e:
                logger.warning(f"Error closing Redis connection: {e}")
            self._redis = None
        self._memory.clear()

    async def start_sweep_task(self) -> None:
        """Start the background sweep task."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop(), name="progress_store_sweep")
            logger.debug("Progress store sweep task started")

    async def stop_sweep_task(self) -> None:
        """Stop the background sweep task."""
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            logger.debug("Progress store sweep task stopped")
        self._sweep_task = None

    async def _sweep_loop(self) -> None:
        """Periodically purge expired memory entries."""
        while True:
            try:
                await asyncio.sleep(self._sweep_interval)
                removed = self._memory.sweep_expired()
                if removed:
                    logger.debug(f"Swept {removed} expired cache entries")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in cache sweep loop: {e}")

    async def _with_fallback(
        self,
        op: str,
        remote: Callable[[], Awaitable[T]],
        local: Callable[[], T],
    ) -> T:
        if self._redis is not None:
            try:
                return await remote()
            except BACKEND_ERRORS as e:
                logger.warning(f"Redis {op} failed, using in-memory cache: {e}")
        return local()

    async def get(self, key: str) -> Optional[str]:
        return await self._with_fallback(
            "get",
            lambda: self._redis.get(key),
            lambda: self._memory.get(key),
        )

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        async def remote() -> None:
            if ttl:
                await self._redis.set(key, value, ex=ttl)
            else:
                await self._redis.set(key, value)

        await self._with_fallback("set", remote, lambda: self._memory.set(key, value, ttl))

    async def delete(self, key: str) -> bool:
        async def remote() -> bool:
            return bool(await self._redis.delete(key))

        return await self._with_fallback("delete", remote, lambda: self._memory.delete(key))

    async def exists(self, key: str) -> bool:
        async def remote() -> bool:
            return bool(await self._redis.exists(key))

        return await self._with_fallback("exists", remote, lambda: self._memory.exists(key))

    async def expire(self, key: str, ttl: int) -> bool:
        async def remote() -> bool:
            return bool(await self._redis.expire(key, ttl))

        return await self._with_fallback("expire", remote, lambda: self._memory.expire(key, ttl))

    async def ttl(self, key: str) -> int:
        async def remote() -> int:
            return int(await self._redis.ttl(key))

        return await self._with_fallback("ttl", remote, lambda: self._memory.ttl(key))

    async def incr(self, key: str) -> int:
        async def remote() -> int:
            return int(await self._redis.incr(key))

        return await self._with_fallback("incr", remote, lambda: self._memory.incr(key))


class ProgressCache:
    """Progress snapshots stored as JSON under `progress:<job_id>`.

    Configuration (env vars):
    - PROGRESS_TTL_SECONDS: Snapshot lifetime (default: 3600)
    """

    KEY_PREFIX = "progress:"

    def __init__(self, store: ProgressStore, ttl_seconds: Optional[int] = None):
        self._store = store
        self._ttl = (
            ttl_seconds
            if ttl_seconds is not None
            else int(os.environ.get("PROGRESS_TTL_SECONDS", DEFAULT_PROGRESS_TTL_SECONDS))
        )

    @classmethod
    def key_for(cls, job_id: int) -> str:
        return f"{cls.KEY_PREFIX}{job_id}"

    async def set_progress(self, job_id: int, snapshot: ProgressSnapshot) -> None:
        await self._store.set(self.key_for(job_id), snapshot.model_dump_json(), ttl=self._ttl)

    async def get_progress(self, job_id: int) -> Optional[ProgressSnapshot]:
        raw = await self._store.get(self.key_for(job_id))
        if raw is None:
            return None
        try:
            return ProgressSnapshot.model_validate_json(raw)
        except (ValidationError, json.JSONDecodeError) as e:
            logger.warning(f"Discarding unreadable progress snapshot for job {job_id}: {e}")
            return None

    async def clear_progress(self, job_id: int) -> None:
        await self._store.delete(self.key_for(job_id))
