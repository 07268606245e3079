"""
Mint: redeem one or more items from a deployed program account to the payer.

Sale gating (go-live date, allow-lists, end settings) is the remote
program's call; a refused mint comes back as RejectedError.
"""

from __future__ import annotations

import json
import logging
from typing import List, Optional, TYPE_CHECKING

from case_deploy.cache.models import Cache
from case_deploy.commands.common import resolve_program_address
from case_deploy.core.errors import NotEnoughItems
from case_deploy.monitoring.progress import NullReporter, StepReporter

if TYPE_CHECKING:
    from case_deploy.gateway.base import ProgramGateway

log = logging.getLogger("case")


async def mint(
    gateway: "ProgramGateway",
    cache: Optional[Cache],
    override: Optional[str] = None,
    number: int = 1,
    reporter: Optional[StepReporter] = None,
) -> List[str]:
    """Mint `number` items in sequence; stops at the first failure."""
    reporter = reporter or NullReporter()
    address = resolve_program_address(override, cache)

    reporter.step(1, 2, "Loading tars")
    reporter.field("Tars ID:", address)
    state = await gateway.fetch_program_state(address)
    available = state.items_available - state.items_redeemed
    if number <= 0 or number > available:
        raise NotEnoughItems(available, number)

    reporter.step(2, 2, "Minting from tars")
    minted: List[str] = []
    with reporter.items(number, description="Minting") as advance:
        for _ in range(number):
            minted.append(await gateway.mint_one(address))
            advance()

    log.info(json.dumps({"event": "tars_minted", "tars": address, "count": len(minted)}))
    if len(minted) == 1:
        reporter.field("Mint:", minted[0])
    else:
        reporter.field("Minted:", f"{len(minted)} item(s)")
    return minted
