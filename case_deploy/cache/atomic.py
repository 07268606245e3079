"""
Async single-writer wrapper around a loaded Cache.

Every mutation runs together with its persistence under one `asyncio.Lock`,
with file IO pushed to the default executor so the event loop keeps
serving in-flight network calls. The lock is never held across a gateway
call.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional, TypeVar, TYPE_CHECKING

from case_deploy.cache.models import Cache
from case_deploy.cache.store import CacheStore

if TYPE_CHECKING:
    from case_deploy.monitoring.metrics_rich import DeployMetrics

T = TypeVar("T")


class AtomicCacheStore:
    def __init__(
        self,
        cache: Cache,
        store: CacheStore,
        metrics: Optional["DeployMetrics"] = None,
    ) -> None:
        self._cache = cache
        self._store = store
        self._lock = asyncio.Lock()
        self._metrics = metrics

    @classmethod
    def open(cls, path, allow_missing: bool = False, metrics: Optional["DeployMetrics"] = None) -> "AtomicCacheStore":
        store = CacheStore(path)
        return cls(store.load(allow_missing=allow_missing), store, metrics=metrics)

    @property
    def cache(self) -> Cache:
        """Read access. Mutate only through `mutate`."""
        return self._cache

    @property
    def path(self):
        return self._store.path

    async def mutate(self, fn: Callable[[Cache], T]) -> T:
        """Apply `fn` to the cache and persist the result before releasing the lock."""
        async with self._lock:
            result = fn(self._cache)
            await self._persist_locked()
            return result

    async def persist(self) -> None:
        async with self._lock:
            await self._persist_locked()

    async def _persist_locked(self) -> None:
        loop = asyncio.get_running_loop()
        start = time.monotonic()
        await loop.run_in_executor(None, self._store.persist, self._cache)
        if self._metrics is not None:
            self._metrics.cache_persist_ms.observe((time.monotonic() - start) * 1000.0)
