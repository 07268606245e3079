"""
Remote program gateway contract.

The deployment core only needs "submit one write for item X and tell me how
it went". Everything about signing, fees and instruction encoding lives
behind this protocol; the core sees addresses as base58 strings and errors
from `case_deploy.core.errors`.

Write semantics: writing a config line targets a fixed slot (its index), so
submitting the same line twice overwrites the slot with identical bytes.
That is what makes resubmission after a lost acknowledgement safe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from case_deploy.deploy.delta import ConfigLine


@dataclass(frozen=True)
class Creator:
    address: str
    share: int
    verified: bool = False


@dataclass(frozen=True)
class HiddenSettings:
    name: str
    uri: str
    hash: str  # 32 characters


@dataclass(frozen=True)
class ProgramSettings:
    """Everything the remote program needs to initialize its account."""
    uuid: str
    price_lamports: int
    symbol: str
    seller_fee_basis_points: int
    items_available: int
    creators: Tuple[Creator, ...]
    is_mutable: bool = True
    retain_authority: bool = True
    go_live_date: Optional[int] = None
    hidden_settings: Optional[HiddenSettings] = None
    treasury_wallet: Optional[str] = None  # None = payer


@dataclass(frozen=True)
class CollectionDescriptor:
    """Collection to attach: the sentinel item's metadata plus an existing mint."""
    name: str
    metadata_link: str
    mint: Optional[str] = None
    seller_fee_basis_points: int = 0
    symbol: str = ""


@dataclass
class ProgramState:
    """Subset of remote account state the CLI and orchestrator look at."""
    address: str
    authority: str
    wallet: str
    items_redeemed: int
    items_available: int = 0
    uuid: str = ""
    price: int = 0
    symbol: str = ""
    token_mint: Optional[str] = None
    collection_mint: Optional[str] = None
    lamports: int = 0
    extra: dict = field(default_factory=dict)


class ProgramGateway(Protocol):
    """Async contract consumed by the orchestrator, uploader and commands."""

    @property
    def payer(self) -> str: ...

    async def payer_balance(self) -> int: ...

    async def rent_exemption(self, size: int) -> int: ...

    async def create_program_account(self, size: int, settings: ProgramSettings) -> str:
        """Create and initialize the remote account. Raises BalanceTooLow / TransientError."""
        ...

    async def write_item(self, program_address: str, line: "ConfigLine") -> None:
        """Write one config line. Raises TransientError / RejectedError / AccountNotFound."""
        ...

    async def read_item(self, program_address: str, index: int) -> Optional["ConfigLine"]:
        """Read back one stored config line, or None when the slot is empty."""
        ...

    async def fetch_program_state(self, address: str) -> ProgramState:
        """Raises AccountNotFound when the address does not resolve."""
        ...

    async def attach_collection(self, program_address: str, collection: CollectionDescriptor) -> str:
        """Returns the collection mint. Raises AuthorityMismatch / AlreadyLocked."""
        ...

    async def detach_collection(self, program_address: str) -> None: ...

    async def update_program(
        self,
        program_address: str,
        settings: ProgramSettings,
        new_authority: Optional[str] = None,
    ) -> None:
        """Replace the account's settings, then hand authority over when asked. Raises AuthorityMismatch."""
        ...

    async def mint_one(self, program_address: str) -> str:
        """Mint the next item to the payer. Returns the new token mint."""
        ...

    async def drain_funds(self, program_address: str) -> None:
        """Raises AccountNotFound."""
        ...

    async def list_program_accounts(self) -> List[Tuple[str, int]]: ...

    async def close(self) -> None: ...
