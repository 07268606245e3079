"""
Cache data model.

The cache is the local, durable record of what a deployment has written to
the remote program. Items are keyed by their decimal index string; "-1" is
the collection item and never counts as a mintable item.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from case_deploy.core.errors import InvalidCacheState

COLLECTION_INDEX = "-1"

# Keys written for every item, in file order.
_ITEM_KEYS = (
    "name",
    "image_hash",
    "image_link",
    "metadata_hash",
    "metadata_link",
    "onChain",
)
_OPTIONAL_ITEM_KEYS = ("animation_hash", "animation_link")


@dataclass
class CacheItem:
    """One deployable asset plus its confirmation flag."""
    name: str
    metadata_link: str
    on_chain: bool = False
    image_hash: str = ""
    image_link: str = ""
    metadata_hash: str = ""
    animation_hash: Optional[str] = None
    animation_link: Optional[str] = None
    # Keys we don't model are carried through untouched
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "image_hash": self.image_hash,
            "image_link": self.image_link,
            "metadata_hash": self.metadata_hash,
            "metadata_link": self.metadata_link,
            "onChain": self.on_chain,
        }
        if self.animation_hash is not None:
            out["animation_hash"] = self.animation_hash
        if self.animation_link is not None:
            out["animation_link"] = self.animation_link
        out.update(self.extra)
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheItem":
        """Build from a parsed cache entry. Raises TypeError/KeyError on bad shape."""
        if not isinstance(data, dict):
            raise TypeError(f"item must be an object, got {type(data).__name__}")
        name = data["name"]
        link = data["metadata_link"]
        on_chain = data.get("onChain", False)
        if not isinstance(name, str) or not isinstance(link, str):
            raise TypeError("name and metadata_link must be strings")
        if not isinstance(on_chain, bool):
            raise TypeError("onChain must be a boolean")
        strings = {}
        for key in ("image_hash", "image_link", "metadata_hash"):
            value = data.get(key, "")
            if not isinstance(value, str):
                raise TypeError(f"{key} must be a string")
            strings[key] = value
        known = set(_ITEM_KEYS) | set(_OPTIONAL_ITEM_KEYS)
        return cls(
            name=name,
            metadata_link=link,
            on_chain=on_chain,
            animation_hash=data.get("animation_hash"),
            animation_link=data.get("animation_link"),
            extra={k: v for k, v in data.items() if k not in known},
            **strings,
        )


@dataclass
class CacheProgram:
    """Remote program descriptor. Empty strings mean 'not created yet'."""
    tars: str = ""
    collection_mint: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"tars": self.tars, "collectionMint": self.collection_mint}
        out.update(self.extra)
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheProgram":
        if not isinstance(data, dict):
            raise TypeError("program must be an object")
        tars = data.get("tars", "")
        mint = data.get("collectionMint", "")
        if not isinstance(tars, str) or not isinstance(mint, str):
            raise TypeError("program addresses must be strings")
        return cls(
            tars=tars,
            collection_mint=mint,
            extra={k: v for k, v in data.items() if k not in ("tars", "collectionMint")},
        )


def canonical_index(index: int | str) -> str:
    """
    Normalize an index to its cache key.

    Raises ValueError for anything that is not a plain decimal integer >= -1
    (so "007" and "7" can never name two different items).
    """
    if isinstance(index, bool):
        raise ValueError(f"invalid item index: {index!r}")
    if isinstance(index, int):
        value = index
    else:
        text = str(index)
        value = int(text)
        if str(value) != text:
            raise ValueError(f"non-canonical item index: {text!r}")
    if value < -1:
        raise ValueError(f"invalid item index: {index!r}")
    return str(value)


@dataclass
class Cache:
    """Durable aggregate: program descriptor plus item records."""
    program: CacheProgram = field(default_factory=CacheProgram)
    items: Dict[str, CacheItem] = field(default_factory=dict)

    # ========== Queries ==========

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Tuple[str, CacheItem]]:
        return iter(self.items.items())

    def get(self, index: int | str) -> Optional[CacheItem]:
        return self.items.get(canonical_index(index))

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def collection_item(self) -> Optional[CacheItem]:
        return self.items.get(COLLECTION_INDEX)

    @property
    def has_collection(self) -> bool:
        return COLLECTION_INDEX in self.items

    def non_collection_count(self) -> int:
        return len(self.items) - (1 if self.has_collection else 0)

    def confirmed_indices(self) -> List[int]:
        return sorted(
            int(k) for k, item in self.items.items()
            if item.on_chain and k != COLLECTION_INDEX
        )

    # ========== Mutators (in-memory; persist separately) ==========

    def upsert(self, index: int | str, item: CacheItem) -> None:
        """Insert or replace an item; an on-chain item can never go back to off-chain."""
        key = canonical_index(index)
        current = self.items.get(key)
        if current is not None and current.on_chain and not item.on_chain:
            raise InvalidCacheState(f"Item {key} is already on-chain and cannot be reset")
        self.items[key] = item

    def remove(self, index: int | str) -> Optional[CacheItem]:
        return self.items.pop(canonical_index(index), None)

    def mark_on_chain(self, index: int | str) -> None:
        key = canonical_index(index)
        item = self.items.get(key)
        if item is None:
            raise InvalidCacheState(f"Item {key} is not in the cache")
        item.on_chain = True

    def set_program_address(self, address: str) -> None:
        """Record the remote account address. Once set it never changes."""
        if not address:
            raise InvalidCacheState("Program address cannot be empty")
        if self.program.tars and self.program.tars != address:
            raise InvalidCacheState(
                f"Cache already belongs to tars {self.program.tars}; "
                "use a fresh cache file for a new deployment"
            )
        self.program.tars = address

    # ========== Serialization ==========

    def to_dict(self) -> Dict[str, Any]:
        return {
            "program": self.program.to_dict(),
            "items": {k: v.to_dict() for k, v in self.items.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cache":
        """Raises TypeError/KeyError/ValueError when data does not fit the schema."""
        if not isinstance(data, dict):
            raise TypeError("cache root must be an object")
        program = CacheProgram.from_dict(data["program"])
        raw_items = data["items"]
        if not isinstance(raw_items, dict):
            raise TypeError("items must be an object")
        items: Dict[str, CacheItem] = {}
        for raw_key, raw_item in raw_items.items():
            key = canonical_index(raw_key)
            if key in items:
                raise ValueError(f"duplicate item index {key}")
            items[key] = CacheItem.from_dict(raw_item)
        return cls(program=program, items=items)
