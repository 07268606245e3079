"""Helpers shared by the one-shot commands."""

from __future__ import annotations

from typing import Optional

from case_deploy.cache.models import Cache
from case_deploy.core.errors import InvalidProgramAddress


def resolve_program_address(override: Optional[str], cache: Optional[Cache]) -> str:
    """An explicit --tars wins over the cache's address."""
    if override:
        return override
    address = cache.program.tars if cache is not None else ""
    if not address:
        raise InvalidProgramAddress(address)
    return address


def lamports_to_sol(lamports: int) -> str:
    return f"{lamports / 1_000_000_000:.9f}".rstrip("0").rstrip(".")
