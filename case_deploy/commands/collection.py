"""
Collection set/remove on an existing program account.

When the target is the cache's own account (no --tars override), the cache
is updated to match: set drops the "-1" item and records the mint, remove
clears the recorded mint.
"""

from __future__ import annotations

import json
import logging
from typing import Optional, TYPE_CHECKING

from case_deploy.cache.atomic import AtomicCacheStore
from case_deploy.cache.models import COLLECTION_INDEX, Cache
from case_deploy.commands.common import resolve_program_address
from case_deploy.core.errors import CollectionLocked
from case_deploy.gateway.base import CollectionDescriptor
from case_deploy.monitoring.progress import NullReporter, StepReporter

if TYPE_CHECKING:
    from case_deploy.gateway.base import ProgramGateway

log = logging.getLogger("case")


async def set_collection(
    gateway: "ProgramGateway",
    store: Optional[AtomicCacheStore],
    mint: str,
    override: Optional[str] = None,
    reporter: Optional[StepReporter] = None,
) -> str:
    reporter = reporter or NullReporter()
    cache = store.cache if store is not None else None
    address = resolve_program_address(override, cache)

    reporter.step(1, 2, "Loading tars")
    state = await gateway.fetch_program_state(address)
    if state.items_redeemed > 0:
        raise CollectionLocked(state.items_redeemed)

    reporter.step(2, 2, "Setting collection mint for tars")
    attached = await gateway.attach_collection(address, CollectionDescriptor(name="", metadata_link="", mint=mint))

    if store is not None and not override:
        def record(c: Cache) -> None:
            c.remove(COLLECTION_INDEX)
            c.program.collection_mint = attached

        await store.mutate(record)

    log.info(json.dumps({"event": "collection_set", "tars": address, "collection_mint": attached}))
    reporter.field("Collection mint ID:", attached)
    return attached


async def remove_collection(
    gateway: "ProgramGateway",
    store: Optional[AtomicCacheStore],
    override: Optional[str] = None,
    reporter: Optional[StepReporter] = None,
) -> str:
    reporter = reporter or NullReporter()
    cache = store.cache if store is not None else None
    address = resolve_program_address(override, cache)

    reporter.step(1, 2, "Loading tars")
    state = await gateway.fetch_program_state(address)
    if state.items_redeemed > 0:
        raise CollectionLocked(state.items_redeemed)

    reporter.step(2, 2, "Removing collection mint for tars")
    await gateway.detach_collection(address)

    if store is not None and not override:
        def clear(c: Cache) -> None:
            c.program.collection_mint = ""

        await store.mutate(clear)

    log.info(json.dumps({"event": "collection_removed", "tars": address}))
    reporter.info("Collection removed.")
    return address
