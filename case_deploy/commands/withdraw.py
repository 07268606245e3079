"""
Withdraw: drain a program account's rent back to the payer, or list them.
"""

from __future__ import annotations

import json
import logging
from typing import List, Optional, Tuple, TYPE_CHECKING

from case_deploy.cache.models import Cache
from case_deploy.commands.common import lamports_to_sol, resolve_program_address
from case_deploy.monitoring.progress import NullReporter, StepReporter

if TYPE_CHECKING:
    from case_deploy.gateway.base import ProgramGateway

log = logging.getLogger("case")


async def list_accounts(
    gateway: "ProgramGateway",
    reporter: Optional[StepReporter] = None,
) -> List[Tuple[str, int]]:
    """Every program account owned by the payer, with its balance. Nothing is drained."""
    reporter = reporter or NullReporter()
    accounts = await gateway.list_program_accounts()
    if not accounts:
        reporter.info("No tars accounts found for this authority.")
        return accounts
    total = 0
    for address, lamports in accounts:
        reporter.info(f"{address} {lamports_to_sol(lamports)} SOL")
        total += lamports
    reporter.field("Total:", f"{len(accounts)} account(s), {lamports_to_sol(total)} SOL")
    return accounts


async def withdraw(
    gateway: "ProgramGateway",
    cache: Optional[Cache],
    override: Optional[str] = None,
    reporter: Optional[StepReporter] = None,
) -> str:
    reporter = reporter or NullReporter()
    address = resolve_program_address(override, cache)
    reporter.step(1, 1, "Withdrawing funds")
    await gateway.drain_funds(address)
    log.info(json.dumps({"event": "withdraw", "tars": address}))
    reporter.field("Withdrew from:", address)
    return address
