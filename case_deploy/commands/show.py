"""
Show: cache summary plus the remote account state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from case_deploy.cache.models import Cache
from case_deploy.commands.common import lamports_to_sol, resolve_program_address
from case_deploy.gateway.base import ProgramState
from case_deploy.monitoring.progress import NullReporter, StepReporter

if TYPE_CHECKING:
    from case_deploy.gateway.base import ProgramGateway

log = logging.getLogger("case")


@dataclass
class ShowReport:
    address: str
    state: ProgramState
    cache_items: int = 0
    cache_confirmed: int = 0
    collection_on_chain: Optional[bool] = None


async def show(
    gateway: "ProgramGateway",
    cache: Optional[Cache],
    override: Optional[str] = None,
    reporter: Optional[StepReporter] = None,
) -> ShowReport:
    reporter = reporter or NullReporter()
    address = resolve_program_address(override, cache)
    state = await gateway.fetch_program_state(address)

    report = ShowReport(address=address, state=state)
    if cache is not None and not override:
        report.cache_items = cache.non_collection_count()
        report.cache_confirmed = len(cache.confirmed_indices())
        collection = cache.collection_item
        report.collection_on_chain = collection.on_chain if collection is not None else None

    reporter.field("Tars ID:", address)
    reporter.field("authority:", state.authority)
    reporter.field("wallet:", state.wallet)
    reporter.field("uuid:", state.uuid)
    reporter.field("price:", f"{lamports_to_sol(state.price)} SOL")
    reporter.field("symbol:", state.symbol or "-")
    reporter.field("items available:", state.items_available)
    reporter.field("items redeemed:", state.items_redeemed)
    reporter.field("collection mint:", state.collection_mint or "none")
    reporter.field("balance:", f"{lamports_to_sol(state.lamports)} SOL")
    if cache is not None and not override:
        reporter.field("cache confirmed:", f"{report.cache_confirmed}/{report.cache_items}")
        if report.collection_on_chain is not None:
            reporter.field("cache collection on-chain:", report.collection_on_chain)
    return report
