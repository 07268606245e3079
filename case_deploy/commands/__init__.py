"""
One-shot commands operating on an existing deployment.
"""

from case_deploy.commands.collection import remove_collection, set_collection
from case_deploy.commands.common import resolve_program_address
from case_deploy.commands.mint import mint
from case_deploy.commands.show import ShowReport, show
from case_deploy.commands.update import update
from case_deploy.commands.validate import validate
from case_deploy.commands.withdraw import list_accounts, withdraw

__all__ = [
    "remove_collection",
    "set_collection",
    "resolve_program_address",
    "mint",
    "ShowReport",
    "show",
    "update",
    "validate",
    "list_accounts",
    "withdraw",
]
