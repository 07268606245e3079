"""
Solana implementation of the remote program gateway.

Every RPC failure is mapped to the error taxonomy here, at the boundary:
network and timeout problems become TransientError, program/simulation
rejections become RejectedError, and a missing account becomes
AccountNotFound. Nothing above this module sees solana-py exceptions.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import DataSliceOpts, MemcmpOpts, TxOpts
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.rpc.errors import (
    BlockNotAvailableMessage,
    BlockStatusNotAvailableYetMessage,
    MinContextSlotNotReachedMessage,
    NodeUnhealthyMessage,
    SendTransactionPreflightFailureMessage,
    SlotSkippedMessage,
)
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import CreateAccountParams, create_account
from solders.sysvar import CLOCK, INSTRUCTIONS, RECENT_BLOCKHASHES, RENT
from solders.transaction import Transaction
from solders.transaction_status import TransactionErrorFieldless
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    InitializeMintParams,
    MintToParams,
    create_associated_token_account,
    get_associated_token_address,
    initialize_mint,
    mint_to,
)

from case_deploy.core.errors import (
    AccountNotFound,
    AlreadyLocked,
    AuthorityMismatch,
    BalanceTooLow,
    ConfigError,
    InvalidProgramAddress,
    RejectedError,
    TransientError,
)
from case_deploy.gateway import layout
from case_deploy.gateway.base import CollectionDescriptor, ProgramSettings, ProgramState

log = logging.getLogger("case")

TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

# SPL token mint account
MINT_SIZE = 82

# JSON-RPC codes for node-side conditions that clear up on their own
_RETRYABLE_RPC_CODES = frozenset({-32004, -32005, -32007, -32014, -32016, 429})

# Preflight rejections that still mean "try again" (typed and JSON forms)
_RETRYABLE_TX_ERRORS = (
    TransactionErrorFieldless.BlockhashNotFound,
    TransactionErrorFieldless.AlreadyProcessed,
    "BlockhashNotFound",
    "AlreadyProcessed",
)

_RETRYABLE_RPC_TYPES = (
    BlockNotAvailableMessage,
    BlockStatusNotAvailableYetMessage,
    MinContextSlotNotReachedMessage,
    NodeUnhealthyMessage,
    SlotSkippedMessage,
)

# Fallback for errors that arrive without a code
_RETRYABLE_RPC_MESSAGES = (
    "blockhash not found",
    "node is behind",
    "too many requests",
    "transaction was not confirmed",
)


def load_keypair(path: str) -> Keypair:
    """Read a Solana CLI keypair file (JSON array of 64 ints)."""
    p = Path(path).expanduser()
    try:
        secret = json.loads(p.read_text())
        return Keypair.from_bytes(bytes(secret))
    except (OSError, ValueError, TypeError) as exc:
        raise ConfigError(f"Failed to read keypair file: {p}, {exc}") from exc


def parse_pubkey(address: str) -> Pubkey:
    try:
        return Pubkey.from_string(address)
    except ValueError as exc:
        raise InvalidProgramAddress(address) from exc


def _pubkey_bytes(address: str) -> bytes:
    return bytes(parse_pubkey(address))


def _rpc_error_fields(err):
    """(code, preflight transaction error) from a typed or raw JSON-RPC error."""
    if isinstance(err, dict):
        data = err.get("data")
        return err.get("code"), data.get("err") if isinstance(data, dict) else None
    if isinstance(err, SendTransactionPreflightFailureMessage):
        return -32002, err.data.err
    return getattr(err, "code", None), None


def map_rpc_exception(exc: RPCException):
    """TransientError or RejectedError for an RPC error, by code where one is given."""
    message = str(exc)
    err = exc.args[0] if exc.args else None
    if isinstance(err, _RETRYABLE_RPC_TYPES):
        return TransientError(message)

    code, tx_err = _rpc_error_fields(err)
    if code in _RETRYABLE_RPC_CODES:
        return TransientError(message)
    if tx_err is not None:
        if tx_err in _RETRYABLE_TX_ERRORS:
            return TransientError(message)
        return RejectedError(message)
    if code is not None:
        return RejectedError(message)

    lowered = message.lower()
    if any(fragment in lowered for fragment in _RETRYABLE_RPC_MESSAGES):
        return TransientError(message)
    return RejectedError(message)


class SolanaProgramGateway:
    def __init__(
        self,
        rpc_url: str,
        keypair: Keypair,
        program_id: str,
        commitment: str = "confirmed",
        timeout: float = 30.0,
        client: Optional[AsyncClient] = None,
    ) -> None:
        self._keypair = keypair
        self._program_id = parse_pubkey(program_id)
        self._commitment = Commitment(commitment)
        self._timeout = timeout
        self._client = client or AsyncClient(rpc_url, commitment=self._commitment, timeout=timeout)

    @property
    def payer(self) -> str:
        return str(self._keypair.pubkey())

    async def close(self) -> None:
        await self._client.close()

    # ========== Queries ==========

    async def payer_balance(self) -> int:
        resp = await self._rpc(self._client.get_balance(self._keypair.pubkey()))
        return int(resp.value)

    async def rent_exemption(self, size: int) -> int:
        resp = await self._rpc(self._client.get_minimum_balance_for_rent_exemption(size))
        return int(resp.value)

    async def fetch_program_state(self, address: str) -> ProgramState:
        pubkey = parse_pubkey(address)
        resp = await self._rpc(self._client.get_account_info(pubkey, encoding="base64"))
        account = resp.value
        if account is None or account.owner != self._program_id:
            raise AccountNotFound(address)
        try:
            header = layout.decode_account_header(bytes(account.data))
        except (ValueError, UnicodeDecodeError) as exc:
            raise RejectedError(f"Failed to deserialize tars account {address}: {exc}") from exc
        return ProgramState(
            address=address,
            authority=str(Pubkey.from_bytes(header.authority)),
            wallet=str(Pubkey.from_bytes(header.wallet)),
            items_redeemed=header.items_redeemed,
            items_available=header.items_available,
            uuid=header.uuid,
            price=header.price,
            symbol=header.symbol,
            token_mint=str(Pubkey.from_bytes(header.token_mint)) if header.token_mint else None,
            collection_mint=await self._collection_mint(pubkey),
            lamports=account.lamports,
        )

    async def read_item(self, program_address: str, index: int):
        from case_deploy.deploy.delta import ConfigLine

        resp = await self._rpc(
            self._client.get_account_info(
                parse_pubkey(program_address),
                encoding="base64",
                data_slice=DataSliceOpts(offset=layout.config_line_offset(index), length=layout.CONFIG_LINE_SIZE),
            )
        )
        if resp.value is None:
            raise AccountNotFound(program_address)
        decoded = layout.decode_config_line(bytes(resp.value.data))
        if decoded is None:
            return None
        return ConfigLine(index=index, name=decoded[0], uri=decoded[1])

    async def list_program_accounts(self) -> List[Tuple[str, int]]:
        resp = await self._rpc(
            self._client.get_program_accounts(
                self._program_id,
                encoding="base64",
                filters=[MemcmpOpts(offset=8, bytes=self.payer)],
            )
        )
        return [(str(acc.pubkey), int(acc.account.lamports)) for acc in resp.value]

    # ========== Writes ==========

    async def create_program_account(self, size: int, settings: ProgramSettings) -> str:
        payer = self._keypair.pubkey()
        lamports = await self.rent_exemption(size)
        balance = await self.payer_balance()
        if lamports > balance:
            raise BalanceTooLow(balance, lamports)

        account = Keypair()
        if not settings.uuid:
            settings = replace(settings, uuid=str(account.pubkey())[:6])
        wallet = parse_pubkey(settings.treasury_wallet) if settings.treasury_wallet else payer
        create_ix = create_account(
            CreateAccountParams(
                from_pubkey=payer,
                to_pubkey=account.pubkey(),
                lamports=lamports,
                space=size,
                owner=self._program_id,
            )
        )
        init_ix = Instruction(
            self._program_id,
            layout.initialize_data(settings, _pubkey_bytes),
            [
                AccountMeta(account.pubkey(), is_signer=False, is_writable=True),
                AccountMeta(wallet, is_signer=False, is_writable=False),
                AccountMeta(payer, is_signer=False, is_writable=False),
                AccountMeta(payer, is_signer=True, is_writable=True),
                AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
                AccountMeta(RENT, is_signer=False, is_writable=False),
            ],
        )
        log.info(json.dumps({"event": "tars_initialize", "size": size, "address": str(account.pubkey())}))
        await self._send([create_ix, init_ix], extra_signers=[account])
        return str(account.pubkey())

    async def write_item(self, program_address: str, line) -> None:
        ix = Instruction(
            self._program_id,
            layout.add_config_lines_data(line.index, [(line.name, line.uri)]),
            [
                AccountMeta(parse_pubkey(program_address), is_signer=False, is_writable=True),
                AccountMeta(self._keypair.pubkey(), is_signer=True, is_writable=False),
            ],
        )
        try:
            await self._send([ix])
        except (TransientError, RejectedError) as exc:
            exc.index = line.index
            raise

    async def attach_collection(self, program_address: str, collection: CollectionDescriptor) -> str:
        if not collection.mint:
            raise RejectedError(
                f"No collection mint for '{collection.name}': set collection_mint in the config"
            )
        state = await self.fetch_program_state(program_address)
        self._assert_authority(state)
        if state.items_redeemed > 0:
            raise AlreadyLocked("Collection cannot change after items have been minted")

        tars = parse_pubkey(program_address)
        mint = parse_pubkey(collection.mint)
        collection_pda = self._collection_pda(tars)
        metadata = self._metadata_pda(mint)
        edition = self._edition_pda(mint)
        authority_record = self._collection_authority_record(mint, collection_pda)
        payer = self._keypair.pubkey()

        ix = Instruction(
            self._program_id,
            layout.set_collection_data(),
            [
                AccountMeta(tars, is_signer=False, is_writable=True),
                AccountMeta(payer, is_signer=True, is_writable=False),
                AccountMeta(collection_pda, is_signer=False, is_writable=True),
                AccountMeta(payer, is_signer=True, is_writable=True),
                AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
                AccountMeta(RENT, is_signer=False, is_writable=False),
                AccountMeta(metadata, is_signer=False, is_writable=False),
                AccountMeta(mint, is_signer=False, is_writable=False),
                AccountMeta(edition, is_signer=False, is_writable=False),
                AccountMeta(authority_record, is_signer=False, is_writable=True),
                AccountMeta(TOKEN_METADATA_PROGRAM_ID, is_signer=False, is_writable=False),
            ],
        )
        await self._send([ix])
        return str(mint)

    async def detach_collection(self, program_address: str) -> None:
        state = await self.fetch_program_state(program_address)
        self._assert_authority(state)
        if state.items_redeemed > 0:
            raise AlreadyLocked("Collection cannot change after items have been minted")
        if not state.collection_mint:
            raise RejectedError(f"Tars {program_address} has no collection set")

        tars = parse_pubkey(program_address)
        mint = parse_pubkey(state.collection_mint)
        collection_pda = self._collection_pda(tars)
        ix = Instruction(
            self._program_id,
            layout.remove_collection_data(),
            [
                AccountMeta(tars, is_signer=False, is_writable=True),
                AccountMeta(self._keypair.pubkey(), is_signer=True, is_writable=False),
                AccountMeta(collection_pda, is_signer=False, is_writable=True),
                AccountMeta(self._metadata_pda(mint), is_signer=False, is_writable=False),
                AccountMeta(mint, is_signer=False, is_writable=False),
                AccountMeta(self._collection_authority_record(mint, collection_pda), is_signer=False, is_writable=True),
                AccountMeta(TOKEN_METADATA_PROGRAM_ID, is_signer=False, is_writable=False),
            ],
        )
        await self._send([ix])

    async def update_program(
        self,
        program_address: str,
        settings: ProgramSettings,
        new_authority: Optional[str] = None,
    ) -> None:
        authority_bytes = None
        if new_authority:
            try:
                authority_bytes = bytes(Pubkey.from_string(new_authority))
            except ValueError as exc:
                raise ConfigError(f"Invalid new authority: {new_authority}") from exc

        state = await self.fetch_program_state(program_address)
        self._assert_authority(state)
        payer = self._keypair.pubkey()
        wallet = parse_pubkey(settings.treasury_wallet) if settings.treasury_wallet else payer
        accounts = [
            AccountMeta(parse_pubkey(program_address), is_signer=False, is_writable=True),
            AccountMeta(payer, is_signer=True, is_writable=False),
            AccountMeta(wallet, is_signer=False, is_writable=False),
        ]
        await self._send([Instruction(self._program_id, layout.update_data(settings, _pubkey_bytes), accounts)])

        # Separate transaction: the settings update must land before authority moves
        if authority_bytes is not None:
            ix = Instruction(self._program_id, layout.update_authority_data(authority_bytes), accounts)
            await self._send([ix])
            log.info(json.dumps({"event": "tars_authority_updated", "address": program_address, "authority": new_authority}))

    async def mint_one(self, program_address: str) -> str:
        state = await self.fetch_program_state(program_address)
        if state.items_redeemed >= state.items_available:
            raise RejectedError(f"Tars {program_address} is empty")
        if state.token_mint:
            raise RejectedError(f"Tars {program_address} takes SPL-token payment, which is not supported")

        payer = self._keypair.pubkey()
        tars = parse_pubkey(program_address)
        nft_mint = Keypair()
        mint = nft_mint.pubkey()
        metadata = self._metadata_pda(mint)
        creator, creator_bump = self._creator_pda(tars)
        rent = await self.rent_exemption(MINT_SIZE)

        instructions = [
            create_account(
                CreateAccountParams(
                    from_pubkey=payer,
                    to_pubkey=mint,
                    lamports=rent,
                    space=MINT_SIZE,
                    owner=TOKEN_PROGRAM_ID,
                )
            ),
            initialize_mint(
                InitializeMintParams(
                    decimals=0,
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint,
                    mint_authority=payer,
                    freeze_authority=payer,
                )
            ),
            create_associated_token_account(payer, payer, mint),
            mint_to(
                MintToParams(
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint,
                    dest=get_associated_token_address(payer, mint),
                    mint_authority=payer,
                    amount=1,
                )
            ),
            Instruction(
                self._program_id,
                layout.mint_nft_data(creator_bump),
                [
                    AccountMeta(tars, is_signer=False, is_writable=True),
                    AccountMeta(creator, is_signer=False, is_writable=False),
                    AccountMeta(payer, is_signer=True, is_writable=True),
                    AccountMeta(parse_pubkey(state.wallet), is_signer=False, is_writable=True),
                    AccountMeta(metadata, is_signer=False, is_writable=True),
                    AccountMeta(mint, is_signer=False, is_writable=True),
                    AccountMeta(payer, is_signer=True, is_writable=False),
                    AccountMeta(payer, is_signer=True, is_writable=False),
                    AccountMeta(self._edition_pda(mint), is_signer=False, is_writable=True),
                    AccountMeta(TOKEN_METADATA_PROGRAM_ID, is_signer=False, is_writable=False),
                    AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
                    AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
                    AccountMeta(RENT, is_signer=False, is_writable=False),
                    AccountMeta(CLOCK, is_signer=False, is_writable=False),
                    AccountMeta(RECENT_BLOCKHASHES, is_signer=False, is_writable=False),
                    AccountMeta(INSTRUCTIONS, is_signer=False, is_writable=False),
                ],
            ),
        ]

        if state.collection_mint:
            collection_mint = parse_pubkey(state.collection_mint)
            collection_pda = self._collection_pda(tars)
            instructions.append(
                Instruction(
                    self._program_id,
                    layout.set_collection_during_mint_data(),
                    [
                        AccountMeta(tars, is_signer=False, is_writable=False),
                        AccountMeta(metadata, is_signer=False, is_writable=False),
                        AccountMeta(payer, is_signer=True, is_writable=False),
                        AccountMeta(collection_pda, is_signer=False, is_writable=True),
                        AccountMeta(TOKEN_METADATA_PROGRAM_ID, is_signer=False, is_writable=False),
                        AccountMeta(INSTRUCTIONS, is_signer=False, is_writable=False),
                        AccountMeta(collection_mint, is_signer=False, is_writable=False),
                        AccountMeta(self._metadata_pda(collection_mint), is_signer=False, is_writable=False),
                        AccountMeta(self._edition_pda(collection_mint), is_signer=False, is_writable=False),
                        AccountMeta(parse_pubkey(state.authority), is_signer=False, is_writable=False),
                        AccountMeta(
                            self._collection_authority_record(collection_mint, collection_pda),
                            is_signer=False,
                            is_writable=False,
                        ),
                    ],
                )
            )

        await self._send(instructions, extra_signers=[nft_mint])
        log.info(json.dumps({"event": "tars_mint", "address": program_address, "mint": str(mint)}))
        return str(mint)

    async def drain_funds(self, program_address: str) -> None:
        state = await self.fetch_program_state(program_address)
        self._assert_authority(state)
        ix = Instruction(
            self._program_id,
            layout.withdraw_funds_data(),
            [
                AccountMeta(parse_pubkey(program_address), is_signer=False, is_writable=True),
                AccountMeta(self._keypair.pubkey(), is_signer=True, is_writable=True),
            ],
        )
        await self._send([ix])

    # ========== Internals ==========

    def _assert_authority(self, state: ProgramState) -> None:
        if state.authority != self.payer:
            raise AuthorityMismatch(state.authority, self.payer)

    def _collection_pda(self, tars: Pubkey) -> Pubkey:
        return Pubkey.find_program_address([b"collection", bytes(tars)], self._program_id)[0]

    def _creator_pda(self, tars: Pubkey) -> Tuple[Pubkey, int]:
        return Pubkey.find_program_address([b"candy_machine", bytes(tars)], self._program_id)

    @staticmethod
    def _metadata_pda(mint: Pubkey) -> Pubkey:
        seeds = [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)]
        return Pubkey.find_program_address(seeds, TOKEN_METADATA_PROGRAM_ID)[0]

    @staticmethod
    def _edition_pda(mint: Pubkey) -> Pubkey:
        seeds = [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint), b"edition"]
        return Pubkey.find_program_address(seeds, TOKEN_METADATA_PROGRAM_ID)[0]

    @staticmethod
    def _collection_authority_record(mint: Pubkey, authority: Pubkey) -> Pubkey:
        seeds = [
            b"metadata",
            bytes(TOKEN_METADATA_PROGRAM_ID),
            bytes(mint),
            b"collection_authority",
            bytes(authority),
        ]
        return Pubkey.find_program_address(seeds, TOKEN_METADATA_PROGRAM_ID)[0]

    async def _collection_mint(self, tars: Pubkey) -> Optional[str]:
        resp = await self._rpc(self._client.get_account_info(self._collection_pda(tars), encoding="base64"))
        if resp.value is None:
            return None
        data = bytes(resp.value.data)
        if len(data) < 40:
            return None
        return str(Pubkey.from_bytes(data[8:40]))

    async def _rpc(self, call):
        """Await one RPC call with a timeout, mapping transport failures."""
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except (asyncio.TimeoutError, SolanaRpcException, httpx.TransportError) as exc:
            raise TransientError(f"RPC unavailable: {exc}") from exc
        except RPCException as exc:
            raise map_rpc_exception(exc) from exc

    async def _send(self, instructions: Sequence[Instruction], extra_signers: Sequence[Keypair] = ()) -> str:
        blockhash_resp = await self._rpc(self._client.get_latest_blockhash(self._commitment))
        tx = Transaction.new_signed_with_payer(
            list(instructions),
            self._keypair.pubkey(),
            [self._keypair, *extra_signers],
            blockhash_resp.value.blockhash,
        )
        opts = TxOpts(skip_preflight=False, preflight_commitment=self._commitment)
        sent = await self._rpc(self._client.send_transaction(tx, opts=opts))
        signature = sent.value
        try:
            confirm = await asyncio.wait_for(
                self._client.confirm_transaction(signature, commitment=self._commitment),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, UnconfirmedTxError, SolanaRpcException, httpx.TransportError) as exc:
            raise TransientError(f"Transaction {signature} not confirmed: {exc}") from exc
        except RPCException as exc:
            raise map_rpc_exception(exc) from exc

        statuses = confirm.value
        if statuses and statuses[0] is not None and statuses[0].err is not None:
            raise RejectedError(f"Transaction {signature} failed: {statuses[0].err}")
        log.debug(json.dumps({"event": "tx_confirmed", "signature": str(signature)}))
        return str(signature)

