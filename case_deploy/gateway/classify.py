"""
The one mapping from exceptions to retry behaviour.

Retry policy depends only on the returned class, never on message text.
"""

from __future__ import annotations

import asyncio
from enum import Enum, auto

import httpx
from solana.exceptions import SolanaRpcException

from case_deploy.core.errors import (
    AlreadyLocked,
    AuthorityMismatch,
    BalanceTooLow,
    CacheError,
    CollectionLocked,
    RejectedError,
    StateMismatch,
    TransientError,
    ValidationError,
)


class ErrorClass(Enum):
    TRANSIENT = auto()  # retry with backoff
    PERMANENT = auto()  # record against the item, keep going
    FATAL = auto()      # stop the run


_TRANSIENT = (
    TransientError,
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    httpx.TransportError,
    SolanaRpcException,
)

_FATAL = (
    StateMismatch,
    BalanceTooLow,
    AuthorityMismatch,
    AlreadyLocked,
    CollectionLocked,
    CacheError,
)

_PERMANENT = (
    RejectedError,
    ValidationError,
)


def classify_error(exc: BaseException) -> ErrorClass:
    if isinstance(exc, _FATAL):
        return ErrorClass.FATAL
    if isinstance(exc, _TRANSIENT):
        return ErrorClass.TRANSIENT
    if isinstance(exc, _PERMANENT):
        return ErrorClass.PERMANENT
    return ErrorClass.PERMANENT


def error_kind(exc: BaseException) -> str:
    """Short label for metrics and reports."""
    return classify_error(exc).name.lower()
