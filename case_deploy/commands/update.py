"""
Update: push the deploy config onto an existing program account, and
optionally hand its authority to another key.

The on-chain uuid is kept; everything else comes from the config file.
"""

from __future__ import annotations

import json
import logging
from typing import Optional, TYPE_CHECKING

from case_deploy.cache.models import Cache
from case_deploy.commands.common import resolve_program_address
from case_deploy.core.errors import AuthorityMismatch
from case_deploy.monitoring.progress import NullReporter, StepReporter

if TYPE_CHECKING:
    from case_deploy.config.deploy_config import DeployConfig
    from case_deploy.gateway.base import ProgramGateway

log = logging.getLogger("case")


async def update(
    gateway: "ProgramGateway",
    deploy_config: "DeployConfig",
    cache: Optional[Cache],
    override: Optional[str] = None,
    new_authority: Optional[str] = None,
    reporter: Optional[StepReporter] = None,
) -> str:
    reporter = reporter or NullReporter()
    address = resolve_program_address(override, cache)

    reporter.step(1, 2, "Loading tars")
    reporter.field("Tars ID:", address)
    state = await gateway.fetch_program_state(address)
    if state.authority != gateway.payer:
        raise AuthorityMismatch(state.authority, gateway.payer)
    settings = deploy_config.to_program_settings(uuid=state.uuid)

    reporter.step(2, 2, "Updating configuration")
    await gateway.update_program(address, settings, new_authority)

    log.info(json.dumps({
        "event": "tars_updated",
        "tars": address,
        "items_available": settings.items_available,
        "new_authority": new_authority,
    }))
    if new_authority:
        reporter.field("New authority:", new_authority)
    reporter.info("Configuration updated.")
    return address
