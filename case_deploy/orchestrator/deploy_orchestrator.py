"""
Deploy Orchestrator - drives one deployment run to convergence.

Phases:
    ENSURE_ACCOUNT ──> WRITE_ITEMS ──> ATTACH_COLLECTION ──> DONE
          │                 │                  │
          └─────────────────┴──────────────────┴──────> FAILED

Which phases actually do work is decided only by the cache: an address in
the cache means the account exists, an on-chain flag means the line is
written, an on-chain "-1" item means the collection is attached. Running
the same deploy twice therefore does nothing the second time, and a run
that was killed resumes from the last persisted confirmation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from case_deploy.cache.atomic import AtomicCacheStore
from case_deploy.cache.models import COLLECTION_INDEX, Cache
from case_deploy.config.config_validator import check_name, check_url
from case_deploy.core.errors import (
    AddItemsFailed,
    BalanceTooLow,
    CacheNotFound,
    CollectionLocked,
    InvalidCacheState,
)
from case_deploy.deploy.cancel import CancelToken
from case_deploy.deploy.delta import ConfigLine, check_item_count, generate_config_lines
from case_deploy.deploy.uploader import ConcurrentUploader, UploadResult, UploaderConfig
from case_deploy.gateway.base import CollectionDescriptor
from case_deploy.gateway.layout import account_size
from case_deploy.monitoring.progress import NullReporter, StepReporter

if TYPE_CHECKING:
    from case_deploy.config.deploy_config import DeployConfig
    from case_deploy.gateway.base import ProgramGateway
    from case_deploy.monitoring.metrics_rich import DeployMetrics

log = logging.getLogger("case")


class DeployState(Enum):
    ENSURE_ACCOUNT = auto()
    WRITE_ITEMS = auto()
    ATTACH_COLLECTION = auto()
    DONE = auto()       # terminal
    FAILED = auto()     # terminal


VALID_TRANSITIONS: Dict[DeployState, List[DeployState]] = {
    DeployState.ENSURE_ACCOUNT: [
        DeployState.WRITE_ITEMS,
        DeployState.ATTACH_COLLECTION,  # hidden settings, no lines to write
        DeployState.DONE,               # hidden settings, no collection
        DeployState.FAILED,
    ],
    DeployState.WRITE_ITEMS: [
        DeployState.ATTACH_COLLECTION,
        DeployState.DONE,
        DeployState.FAILED,
    ],
    DeployState.ATTACH_COLLECTION: [
        DeployState.DONE,
        DeployState.FAILED,
    ],
    DeployState.DONE: [],
    DeployState.FAILED: [],
}


@dataclass
class OrchestratorConfig:
    """Configuration for DeployOrchestrator."""
    uploader: UploaderConfig = field(default_factory=UploaderConfig)

    # Empty = derived from the new account address by the gateway
    uuid: str = ""

    log_event_callback: Optional[Callable[..., None]] = None


@dataclass
class DeployResult:
    """Outcome of one run."""
    state: DeployState
    program_address: str = ""
    collection_mint: str = ""
    upload: UploadResult = field(default_factory=UploadResult)
    interrupted: bool = False
    created_account: bool = False
    steps: int = 0
    elapsed_sec: float = 0.0

    @property
    def success(self) -> bool:
        return self.state is DeployState.DONE and not self.interrupted


class DeployOrchestrator:
    """
    Usage:
        store = AtomicCacheStore.open("cache.json")
        orch = DeployOrchestrator(gateway, store, deploy_config, cancel)
        result = await orch.run()
        if result.interrupted:
            ...  # rerun the same command to resume
    """

    def __init__(
        self,
        gateway: "ProgramGateway",
        store: AtomicCacheStore,
        deploy_config: "DeployConfig",
        cancel: Optional[CancelToken] = None,
        config: Optional[OrchestratorConfig] = None,
        reporter: Optional[StepReporter] = None,
        metrics: Optional["DeployMetrics"] = None,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.deploy_config = deploy_config
        self.cancel = cancel or CancelToken()
        self.config = config or OrchestratorConfig()
        self.reporter = reporter or NullReporter()
        self.metrics = metrics
        self.state = DeployState.ENSURE_ACCOUNT
        self._log_event = self.config.log_event_callback or self._default_log
        self._items_redeemed = 0
        self._step = 0
        self._total_steps = 0

    def _default_log(self, event: str, **kwargs: Any) -> None:
        import json
        payload = {"event": event, **kwargs}
        log.info(json.dumps(payload))

    @property
    def cache(self) -> Cache:
        return self.store.cache

    def _transition(self, new_state: DeployState, reason: str = "") -> None:
        if new_state not in VALID_TRANSITIONS[self.state]:
            raise InvalidCacheState(f"Invalid deploy transition {self.state.name} -> {new_state.name}")
        self._log_event("deploy_state", from_state=self.state.name, to_state=new_state.name, reason=reason)
        self.state = new_state

    def _next_step(self, message: str) -> None:
        self._step += 1
        self.reporter.step(self._step, self._total_steps, message)

    # ========== Entry point ==========

    async def run(self) -> DeployResult:
        start = time.monotonic()
        try:
            result = await self._run()
        except BaseException as exc:
            if self.state not in (DeployState.DONE, DeployState.FAILED):
                self._log_event("deploy_failed", state=self.state.name, error=str(exc) or type(exc).__name__)
                self.state = DeployState.FAILED
            raise
        result.elapsed_sec = time.monotonic() - start
        self._log_event(
            "deploy_done",
            state=result.state.name,
            tars=result.program_address,
            confirmed=len(result.upload.confirmed),
            interrupted=result.interrupted,
            elapsed_sec=round(result.elapsed_sec, 3),
        )
        return result

    async def _run(self) -> DeployResult:
        self.preflight()
        hidden = self.deploy_config.hidden
        has_collection = self.cache.has_collection
        self._total_steps = 1 + (0 if hidden else 1) + (1 if has_collection else 0)
        result = DeployResult(state=self.state, steps=self._total_steps)

        # ENSURE_ACCOUNT
        result.program_address, result.created_account = await self._ensure_account()

        # WRITE_ITEMS
        if not hidden:
            self._transition(DeployState.WRITE_ITEMS)
            result.upload = await self._write_items(result.program_address)
            if result.upload.interrupted:
                result.interrupted = True
                result.state = self.state
                self.reporter.info("Upload interrupted; run deploy again to resume.")
                return result

        # ATTACH_COLLECTION
        if has_collection:
            self._transition(DeployState.ATTACH_COLLECTION)
            await self._attach_collection(result.program_address)

        result.collection_mint = self.cache.program.collection_mint
        self._transition(DeployState.DONE)
        result.state = self.state
        return result

    # ========== Phases ==========

    def preflight(self) -> None:
        """Local checks only; nothing is sent before they pass."""
        cache = self.cache
        if cache.is_empty:
            raise CacheNotFound(str(self.store.path), hint="Cache has no items; run upload first.")
        for _, item in cache:
            check_name(item.name)
            check_url(item.metadata_link)
        check_item_count(self.deploy_config.number, cache.items)

    async def _ensure_account(self) -> tuple[str, bool]:
        address = self.cache.program.tars
        if address:
            self._next_step("Loading tars")
            state = await self.gateway.fetch_program_state(address)
            self._items_redeemed = state.items_redeemed
            self.reporter.field("Tars ID:", address)
            self._log_event("tars_loaded", tars=address, items_redeemed=state.items_redeemed)
            return address, False

        self._next_step("Creating tars")
        n = self.deploy_config.number
        size = account_size(n, self.deploy_config.hidden)
        need = await self.gateway.rent_exemption(size)
        have = await self.gateway.payer_balance()
        if need > have:
            raise BalanceTooLow(have, need)

        settings = self.deploy_config.to_program_settings(uuid=self.config.uuid)
        address = await self.gateway.create_program_account(size, settings)
        # Persisted before any line is written so a crash never orphans the account.
        await self.store.mutate(lambda c: c.set_program_address(address))
        self.reporter.field("Tars ID:", address)
        self._log_event("tars_created", tars=address, size=size, rent_lamports=need)
        return address, True

    async def _write_items(self, address: str) -> UploadResult:
        self._next_step("Writing config lines")
        # An interrupt from a previous run must not stop this one.
        self.cancel.clear()
        delta = generate_config_lines(self.deploy_config.number, self.cache)
        if not delta:
            self.reporter.info("All config lines deployed.")
            return UploadResult()

        async def mark_and_persist(line: ConfigLine) -> None:
            await self.store.mutate(lambda c: c.mark_on_chain(line.index))

        self.reporter.info(f"Sending config line(s) in {len(delta)} transaction(s)")
        with self.reporter.items(len(delta), "Writing config lines") as advance:
            uploader = ConcurrentUploader(
                self.gateway,
                address,
                on_confirmed=mark_and_persist,
                config=self.config.uploader,
                metrics=self.metrics,
                on_progress=advance,
            )
            upload = await uploader.upload(delta, self.cancel)

        if upload.errors:
            raise AddItemsFailed(upload.errors, interrupted=upload.interrupted)
        return upload

    async def _attach_collection(self, address: str) -> None:
        self._next_step("Setting collection")
        item = self.cache.collection_item
        if item is None or item.on_chain:
            self.reporter.info("Collection already set.")
            return
        if self._items_redeemed > 0:
            raise CollectionLocked(self._items_redeemed)

        descriptor = CollectionDescriptor(
            name=item.name,
            metadata_link=item.metadata_link,
            mint=self.deploy_config.collection_mint or self.cache.program.collection_mint or None,
            seller_fee_basis_points=self.deploy_config.seller_fee_basis_points,
            symbol=self.deploy_config.symbol,
        )
        mint = await self.gateway.attach_collection(address, descriptor)

        def record(c: Cache) -> None:
            c.program.collection_mint = mint
            c.mark_on_chain(COLLECTION_INDEX)

        await self.store.mutate(record)
        self.reporter.field("Collection mint ID:", mint)
        self._log_event("collection_attached", tars=address, collection_mint=mint)
