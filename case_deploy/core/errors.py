"""
Error taxonomy for deployments.

Categories:
- Validation: bad manifest/config/cache fields. Fails fast, never retried.
- Transient: network / timeout. Retried with bounded backoff by the uploader.
- Permanent-remote: the remote program rejected one write. Recorded per index.
- StateMismatch: the cache disagrees with on-chain reality. Fatal.
- Interrupted: operator stop. Not an error; reported on results, not raised.

Retry decisions never look at these classes directly; they go through
`case_deploy.gateway.classify.classify_error`.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

LAMPORTS_PER_SOL = 1_000_000_000


class CaseError(Exception):
    """Root of all deployment errors."""


# ========== Cache ==========

class CacheError(CaseError):
    pass


class CacheNotFound(CacheError):
    def __init__(self, path: str, hint: str = "Run `case upload` to create it or provide it with the --cache option.") -> None:
        self.path = path
        super().__init__(f"Cache file '{path}' not found. {hint}")


class CacheCorrupt(CacheError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to parse cache file '{path}' with error: {reason}")


class CacheIOError(CacheError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write cache file '{path}': {reason}")


class InvalidCacheState(CacheError):
    pass


class InvalidProgramAddress(CacheError):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(
            f"Invalid tars address: '{address}'. Check your cache file or run deploy "
            "to ensure your tars was created."
        )


# ========== Validation ==========

class ValidationError(CaseError):
    pass


class ConfigError(ValidationError):
    pass


class MissingField(ValidationError):
    def __init__(self, index: str | int, field: str) -> None:
        self.index = str(index)
        self.field = field
        super().__init__(f"Missing {field} for item {self.index}")


class CountMismatch(ValidationError):
    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Number of items ({expected}) do not match cache items ({actual}). "
            "Item number in the config should only include asset files, not the collection file."
        )


# ========== Remote ==========

class GatewayError(CaseError):
    """Failure reported by the remote program gateway for one call."""

    def __init__(self, message: str, index: Optional[int] = None) -> None:
        self.index = index
        self.message = message
        super().__init__(message)


class TransientError(GatewayError):
    """Network or timeout failure; the call may be retried."""


class RejectedError(GatewayError):
    """The remote program refused the call; retrying will not help."""


class StateMismatch(CaseError):
    pass


class AccountNotFound(StateMismatch):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Tars {address} from cache doesn't exist on chain!")


class BalanceTooLow(CaseError):
    def __init__(self, have: int, need: int) -> None:
        self.have = have
        self.need = need
        super().__init__(
            f"Balance too low: {have / LAMPORTS_PER_SOL:.3f} SOL available, "
            f"{need / LAMPORTS_PER_SOL:.3f} SOL required"
        )


class AuthorityMismatch(CaseError):
    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Payer key '{actual}' does not equal the authority pubkey '{expected}'")


class AlreadyLocked(CaseError):
    pass


class CollectionLocked(CaseError):
    def __init__(self, items_redeemed: int) -> None:
        self.items_redeemed = items_redeemed
        super().__init__(
            f"You can't modify the Tars collection after items have been minted "
            f"({items_redeemed} redeemed)."
        )


class NotEnoughItems(CaseError):
    def __init__(self, available: int, requested: int) -> None:
        self.available = available
        self.requested = requested
        super().__init__(f"{available} item(s) available, requested {requested}")


# ========== Aggregates ==========

def unique_messages(messages: Iterable[str]) -> List[str]:
    """Deduplicate messages keeping first-seen order."""
    seen: dict[str, None] = {}
    for m in messages:
        seen.setdefault(m, None)
    return list(seen)


class AddItemsFailed(CaseError):
    """One or more config lines could not be written."""

    def __init__(self, errors: Sequence, interrupted: bool = False) -> None:
        self.errors = list(errors)
        self.interrupted = interrupted
        self.unique = unique_messages(e.message for e in self.errors)
        lines = [f"Failed to deploy all config lines, {len(self.errors)} error(s) occurred:"]
        lines.extend(f"=> {m}" for m in self.unique)
        if interrupted:
            lines.append("(upload was interrupted before all items were dispatched)")
        super().__init__("\n".join(lines))
