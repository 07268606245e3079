"""
Delta generation: which config lines still have to be written.

The delta is never stored. It is recomputed from the cache every time a
write phase starts, which is what lets a restarted run pick up exactly
where the previous one stopped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping

from case_deploy.cache.models import COLLECTION_INDEX, Cache, CacheItem
from case_deploy.core.errors import CountMismatch, MissingField


@dataclass(frozen=True)
class ConfigLine:
    """One item as submitted in a single write call."""
    index: int
    name: str
    uri: str


def check_item_count(num_items: int, cache_items: Mapping[str, CacheItem]) -> None:
    """Guard against a manifest edited after the first upload."""
    actual = len(cache_items) - (1 if COLLECTION_INDEX in cache_items else 0)
    if actual != num_items:
        raise CountMismatch(num_items, actual)


def generate_config_lines(num_items: int, cache_items: Mapping[str, CacheItem] | Cache) -> List[ConfigLine]:
    """
    Config lines for indices 0..num_items-1 not yet confirmed, ascending.

    Raises:
        CountMismatch: cache holds a different number of non-collection items
        MissingField: an included index has no record, name or metadata link
    """
    items = cache_items.items if isinstance(cache_items, Cache) else cache_items
    check_item_count(num_items, items)

    lines: List[ConfigLine] = []
    for i in range(num_items):
        item = items.get(str(i))
        if item is None:
            raise MissingField(i, "record")
        if item.on_chain:
            continue
        if not item.name:
            raise MissingField(i, "name")
        if not item.metadata_link:
            raise MissingField(i, "metadata_link")
        lines.append(ConfigLine(index=i, name=item.name, uri=item.metadata_link))
    return lines
