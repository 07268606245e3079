"""
Account layout and instruction encoding for the tars program.

Instructions use Anchor framing: an 8-byte discriminator
(sha256("global:<name>")[:8]) followed by borsh-encoded arguments.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple, TypeVar

from case_deploy.gateway.base import Creator, HiddenSettings, ProgramSettings

MAX_NAME_LENGTH = 32
MAX_URI_LENGTH = 200
MAX_SYMBOL_LENGTH = 10
MAX_CREATOR_LIMIT = 5
MAX_CREATOR_LEN = 32 + 1 + 1

CONFIG_LINE_SIZE = 4 + MAX_NAME_LENGTH + 4 + MAX_URI_LENGTH

CONFIG_ARRAY_START = (
    8  # key
    + 32  # authority
    + 32  # wallet
    + 33  # token mint
    + 4 + 6  # uuid
    + 8  # price
    + 8  # items available
    + 9  # go live
    + 10  # end settings
    + 4 + MAX_SYMBOL_LENGTH  # symbol
    + 2  # seller fee basis points
    + 4 + MAX_CREATOR_LIMIT * MAX_CREATOR_LEN  # creators
    + 8  # max supply
    + 1  # is mutable
    + 1  # retain authority
    + 1  # hidden settings option
    + 4 + MAX_NAME_LENGTH  # name
    + 4 + MAX_URI_LENGTH  # uri
    + 32  # hash
    + 4  # max number of lines
    + 8  # items redeemed
    + 1  # whitelist option
    + 1  # whitelist mint mode
    + 1  # allow presale
    + 9  # discount price
    + 32  # whitelist mint
    + 1 + 32 + 1  # gatekeeper
)


def account_size(items_available: int, hidden: bool) -> int:
    """Bytes to allocate for the remote account."""
    if hidden:
        return CONFIG_ARRAY_START
    return (
        CONFIG_ARRAY_START
        + 4
        + items_available * CONFIG_LINE_SIZE
        + 8
        + 2 * (items_available // 8 + 1)
    )


def config_line_offset(index: int) -> int:
    return CONFIG_ARRAY_START + 4 + index * CONFIG_LINE_SIZE


def discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


# ========== Borsh writers ==========

def u8(v: int) -> bytes:
    return struct.pack("<B", v)


def u16(v: int) -> bytes:
    return struct.pack("<H", v)


def u32(v: int) -> bytes:
    return struct.pack("<I", v)


def u64(v: int) -> bytes:
    return struct.pack("<Q", v)


def i64(v: int) -> bytes:
    return struct.pack("<q", v)


def boolean(v: bool) -> bytes:
    return b"\x01" if v else b"\x00"


def string(s: str) -> bytes:
    raw = s.encode("utf-8")
    return u32(len(raw)) + raw


T = TypeVar("T")


def option(value: Optional[T], encode: Callable[[T], bytes]) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + encode(value)


def encode_creator(creator: Creator, pubkey_bytes: Callable[[str], bytes]) -> bytes:
    return pubkey_bytes(creator.address) + boolean(creator.verified) + u8(creator.share)


def encode_hidden_settings(hidden: HiddenSettings) -> bytes:
    digest = hidden.hash.encode("utf-8")
    if len(digest) != 32:
        raise ValueError("hidden settings hash must be exactly 32 bytes")
    return string(hidden.name) + string(hidden.uri) + digest


def encode_program_data(settings: ProgramSettings, pubkey_bytes: Callable[[str], bytes]) -> bytes:
    creators = b"".join(encode_creator(c, pubkey_bytes) for c in settings.creators)
    return b"".join([
        string(settings.uuid),
        u64(settings.price_lamports),
        string(settings.symbol),
        u16(settings.seller_fee_basis_points),
        u64(0),  # max supply
        boolean(settings.is_mutable),
        boolean(settings.retain_authority),
        option(settings.go_live_date, i64),
        b"\x00",  # end settings
        u32(len(settings.creators)) + creators,
        option(settings.hidden_settings, encode_hidden_settings),
        b"\x00",  # whitelist mint settings
        u64(settings.items_available),
        b"\x00",  # gatekeeper
    ])


def initialize_data(settings: ProgramSettings, pubkey_bytes: Callable[[str], bytes]) -> bytes:
    return discriminator("initialize_candy_machine") + encode_program_data(settings, pubkey_bytes)


def add_config_lines_data(index: int, lines: Sequence[Tuple[str, str]]) -> bytes:
    body = u32(index) + u32(len(lines))
    for name, uri in lines:
        body += string(name) + string(uri)
    return discriminator("add_config_lines") + body


def update_data(settings: ProgramSettings, pubkey_bytes: Callable[[str], bytes]) -> bytes:
    return discriminator("update_candy_machine") + encode_program_data(settings, pubkey_bytes)


def update_authority_data(new_authority: Optional[bytes]) -> bytes:
    return discriminator("update_authority") + option(new_authority, bytes)


def mint_nft_data(creator_bump: int) -> bytes:
    return discriminator("mint_nft") + u8(creator_bump)


def set_collection_during_mint_data() -> bytes:
    return discriminator("set_collection_during_mint")


def set_collection_data() -> bytes:
    return discriminator("set_collection")


def remove_collection_data() -> bytes:
    return discriminator("remove_collection")


def withdraw_funds_data() -> bytes:
    return discriminator("withdraw_funds")


# ========== Readers ==========

class Reader:
    """Sequential borsh reader over account data."""

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = data
        self.pos = offset

    def take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise ValueError("account data truncated")
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return struct.unpack("<H", self.take(2))[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self.take(8))[0]

    def i64(self) -> int:
        return struct.unpack("<q", self.take(8))[0]

    def boolean(self) -> bool:
        return self.u8() != 0

    def string(self) -> str:
        return self.take(self.u32()).decode("utf-8")

    def pubkey(self) -> bytes:
        return self.take(32)

    def option(self, read: Callable[[], T]) -> Optional[T]:
        return read() if self.u8() else None


@dataclass
class AccountHeader:
    authority: bytes
    wallet: bytes
    token_mint: Optional[bytes]
    items_redeemed: int
    uuid: str
    price: int
    symbol: str
    seller_fee_basis_points: int
    items_available: int


def decode_account_header(data: bytes) -> AccountHeader:
    r = Reader(data, offset=8)
    authority = r.pubkey()
    wallet = r.pubkey()
    token_mint = r.option(r.pubkey)
    items_redeemed = r.u64()
    uuid = r.string()
    price = r.u64()
    symbol = r.string()
    seller_fee = r.u16()
    r.u64()  # max supply
    r.boolean()  # is mutable
    r.boolean()  # retain authority
    r.option(r.i64)  # go live date
    r.option(lambda: (r.u8(), r.u64()))  # end settings
    for _ in range(r.u32()):
        r.take(MAX_CREATOR_LEN)
    r.option(lambda: (r.string(), r.string(), r.take(32)))  # hidden settings
    r.option(lambda: (r.u8(), r.pubkey(), r.boolean(), r.option(r.u64)))  # whitelist
    items_available = r.u64()
    return AccountHeader(
        authority=authority,
        wallet=wallet,
        token_mint=token_mint,
        items_redeemed=items_redeemed,
        uuid=uuid,
        price=price,
        symbol=symbol.rstrip("\x00"),
        seller_fee_basis_points=seller_fee,
        items_available=items_available,
    )


def decode_config_line(data: bytes) -> Optional[Tuple[str, str]]:
    """Decode one stored slot; None for a slot that was never written."""
    if len(data) < CONFIG_LINE_SIZE:
        return None
    r = Reader(data)
    name = r.take(min(r.u32(), MAX_NAME_LENGTH)).rstrip(b"\x00").decode("utf-8")
    r.pos = 4 + MAX_NAME_LENGTH
    uri = r.take(min(r.u32(), MAX_URI_LENGTH)).rstrip(b"\x00").decode("utf-8")
    if not name and not uri:
        return None
    return name, uri
