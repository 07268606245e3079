"""
Cache persistence.

All filesystem writes to the cache go through `persist_cache`, which writes a
sibling temp file, fsyncs it and renames it over the target so a crash can
never leave a half-written cache behind.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from case_deploy.cache.models import Cache
from case_deploy.core.errors import CacheCorrupt, CacheIOError, CacheNotFound
from case_deploy.core.json_utils import JSONDecodeError, dumps_pretty, loads

log = logging.getLogger("case")


def load_cache(path: str | os.PathLike, allow_missing: bool = False) -> Cache:
    """
    Load a cache file.

    Args:
        path: Cache file location
        allow_missing: Return an empty cache instead of failing when absent

    Raises:
        CacheNotFound: file absent and allow_missing is False
        CacheCorrupt: file present but not a valid cache
    """
    p = Path(path)
    if not p.exists():
        if allow_missing:
            return Cache()
        raise CacheNotFound(str(p))

    try:
        raw = p.read_bytes()
    except OSError as exc:
        raise CacheCorrupt(str(p), f"unreadable: {exc}") from exc

    try:
        return Cache.from_dict(loads(raw))
    except JSONDecodeError as exc:
        raise CacheCorrupt(str(p), f"invalid JSON: {exc}") from exc
    except KeyError as exc:
        raise CacheCorrupt(str(p), f"missing field {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise CacheCorrupt(str(p), str(exc)) from exc


def persist_cache(cache: Cache, path: str | os.PathLike) -> None:
    """
    Atomically write the whole cache.

    Raises:
        CacheIOError: on any filesystem failure (the previous file is left intact)
    """
    p = Path(path)
    tmp = p.with_name(f".{p.name}.tmp")
    try:
        data = dumps_pretty(cache.to_dict())
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        tmp.replace(p)
    except OSError as exc:
        log.error(f"cache_persist_error:{exc}")
        try:
            tmp.unlink()
        except OSError:
            pass
        raise CacheIOError(str(p), str(exc)) from exc


class CacheStore:
    """Path-bound convenience wrapper around load_cache / persist_cache."""

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)

    def load(self, allow_missing: bool = False) -> Cache:
        return load_cache(self.path, allow_missing=allow_missing)

    def persist(self, cache: Cache) -> None:
        persist_cache(cache, self.path)
