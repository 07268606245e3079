"""
Cache package.

Data model, atomic file persistence and the async single-writer wrapper.
"""

from case_deploy.cache.models import (
    COLLECTION_INDEX,
    Cache,
    CacheItem,
    CacheProgram,
    canonical_index,
)
from case_deploy.cache.store import CacheStore, load_cache, persist_cache
from case_deploy.cache.atomic import AtomicCacheStore

__all__ = [
    "COLLECTION_INDEX",
    "Cache",
    "CacheItem",
    "CacheProgram",
    "canonical_index",
    "CacheStore",
    "load_cache",
    "persist_cache",
    "AtomicCacheStore",
]
