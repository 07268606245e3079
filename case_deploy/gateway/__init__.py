"""
Gateway package.

Contract between the deployment core and the remote program, the single
error classification function, and the Solana implementation.
"""

from case_deploy.gateway.base import (
    CollectionDescriptor,
    Creator,
    HiddenSettings,
    ProgramGateway,
    ProgramSettings,
    ProgramState,
)
from case_deploy.gateway.classify import ErrorClass, classify_error, error_kind
from case_deploy.gateway.layout import account_size


def __getattr__(name: str):
    """Lazy import: the Solana client stack is only loaded when a real gateway is built."""
    if name == "SolanaProgramGateway":
        from case_deploy.gateway.solana_gateway import SolanaProgramGateway
        return SolanaProgramGateway
    if name == "load_keypair":
        from case_deploy.gateway.solana_gateway import load_keypair
        return load_keypair
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "CollectionDescriptor",
    "Creator",
    "HiddenSettings",
    "ProgramGateway",
    "ProgramSettings",
    "ProgramState",
    "ErrorClass",
    "classify_error",
    "error_kind",
    "account_size",
    "SolanaProgramGateway",
    "load_keypair",
]
