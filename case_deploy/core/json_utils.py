"""
Fast JSON utilities backed by orjson.

Usage:
    from case_deploy.core.json_utils import dumps_pretty, loads

    path.write_bytes(dumps_pretty(cache.to_dict()))
"""

from __future__ import annotations

from typing import Any

import orjson


def dumps_pretty(obj: Any) -> bytes:
    """Indented JSON encode to bytes (used for files people read)."""
    return orjson.dumps(obj, option=orjson.OPT_INDENT_2)


def loads(s: str | bytes) -> Any:
    """JSON decode."""
    return orjson.loads(s)


JSONDecodeError = orjson.JSONDecodeError
