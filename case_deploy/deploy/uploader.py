"""
ConcurrentUploader: bounded-parallel config line writes.

Architecture:
    The delta is loaded into an asyncio.Queue drained by a fixed number of
    worker tasks. Each worker writes one line through the gateway, retries
    transient failures with backoff, and hands every confirmation to the
    `on_confirmed` callback (the orchestrator's mark-and-persist) before it
    takes the next line. Workers never touch the cache themselves.

Cancellation:
    Workers check the CancelToken before taking each new line and before
    resubmitting a line after a transient failure. A write already submitted
    runs to completion; a line whose retry is skipped stays unconfirmed and
    shows up in the next delta.

Failure handling:
    Errors are classified once by `classify_error`. Transient errors are
    retried up to `RetryPolicy.max_attempts`; permanent ones are recorded
    against the index and the batch carries on; a fatal one stops dispatch
    and is re-raised once in-flight writes have drained.
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TYPE_CHECKING

from case_deploy.core.errors import unique_messages
from case_deploy.deploy.cancel import CancelToken
from case_deploy.deploy.delta import ConfigLine
from case_deploy.gateway.classify import ErrorClass, classify_error, error_kind

if TYPE_CHECKING:
    from case_deploy.gateway.base import ProgramGateway
    from case_deploy.monitoring.metrics_rich import DeployMetrics

log = logging.getLogger("case")


@dataclass
class RetryPolicy:
    """Exponential backoff with jitter for transient write failures."""
    max_attempts: int = 3
    base_delay_sec: float = 0.5
    max_delay_sec: float = 8.0
    jitter: float = 0.5

    def delay(self, attempt: int) -> float:
        backoff = min(self.base_delay_sec * (2 ** max(0, attempt - 1)), self.max_delay_sec)
        if backoff <= 0:
            return 0.0
        return backoff + random.uniform(0, backoff * self.jitter)


@dataclass
class UploaderConfig:
    """Configuration for ConcurrentUploader."""
    # 0 = two workers per CPU
    workers: int = 0

    retry: RetryPolicy = field(default_factory=RetryPolicy)

    # Read the slot back before retrying, to catch writes whose ack was lost
    verify_before_retry: bool = True

    log_event_callback: Optional[Callable[..., None]] = None

    def resolve_workers(self, pending: int) -> int:
        limit = self.workers if self.workers > 0 else 2 * (os.cpu_count() or 1)
        return max(1, min(limit, pending))


@dataclass
class ItemError:
    """A write that did not succeed."""
    index: int
    message: str
    kind: str = "permanent"
    attempts: int = 1

    def __str__(self) -> str:
        return f"item {self.index}: {self.message}"


@dataclass
class UploadResult:
    """Outcome of one upload pass."""
    confirmed: List[int] = field(default_factory=list)
    errors: List[ItemError] = field(default_factory=list)
    interrupted: bool = False

    @property
    def success(self) -> bool:
        return not self.errors and not self.interrupted

    def unique_messages(self) -> List[str]:
        return unique_messages(e.message for e in self.errors)


@dataclass
class _RunState:
    confirmed: List[int] = field(default_factory=list)
    errors: List[ItemError] = field(default_factory=list)
    fatal: Optional[BaseException] = None
    dispatched: int = 0
    # taken but left unconfirmed because of cancellation
    abandoned: List[int] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.fatal is not None


class ConcurrentUploader:
    """
    Writes a delta of config lines with bounded parallelism.

    Usage:
        uploader = ConcurrentUploader(gateway, address, on_confirmed=mark_and_persist)
        result = await uploader.upload(delta, cancel)
        if result.errors:
            ...  # partial success; the cache already holds every confirmation
    """

    def __init__(
        self,
        gateway: "ProgramGateway",
        program_address: str,
        on_confirmed: Callable[[ConfigLine], Awaitable[None]],
        config: Optional[UploaderConfig] = None,
        metrics: Optional["DeployMetrics"] = None,
        on_progress: Optional[Callable[[], None]] = None,
    ) -> None:
        self.gateway = gateway
        self.program_address = program_address
        self.config = config or UploaderConfig()
        self.metrics = metrics
        self._on_confirmed = on_confirmed
        self._on_progress = on_progress
        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, **kwargs: Any) -> None:
        import json
        payload = {"event": event, "tars": self.program_address, **kwargs}
        level = logging.WARNING if event in ("item_write_retry", "item_write_failed") else logging.DEBUG
        log.log(level, json.dumps(payload))

    async def upload(self, delta: Sequence[ConfigLine], cancel: CancelToken) -> UploadResult:
        """
        Write every line in `delta` unless cancelled.

        Returns:
            UploadResult with confirmed indices, per-index errors and whether
            dispatch (or a retry) was stopped by the cancel token.

        Raises:
            The first fatal error (e.g. AccountNotFound, CacheIOError), after
            in-flight writes have finished. Per-index errors recorded before
            the abort travel on it as `item_errors`.
        """
        if not delta:
            return UploadResult()

        queue: asyncio.Queue[ConfigLine] = asyncio.Queue()
        for line in delta:
            queue.put_nowait(line)

        state = _RunState()
        n_workers = self.config.resolve_workers(len(delta))
        self._log_event("upload_start", items=len(delta), workers=n_workers)

        workers = [
            asyncio.create_task(self._worker(queue, cancel, state), name=f"uploader-{i}")
            for i in range(n_workers)
        ]
        await asyncio.gather(*workers)

        if state.fatal is not None:
            errors = sorted(state.errors, key=lambda e: e.index)
            # Keep the per-index diagnosis on the exception that propagates
            state.fatal.item_errors = errors
            self._log_event(
                "upload_aborted",
                error=str(state.fatal),
                confirmed=len(state.confirmed),
                item_errors=len(errors),
                messages=unique_messages(e.message for e in errors),
            )
            raise state.fatal

        interrupted = cancel.is_set() and (not queue.empty() or bool(state.abandoned))
        result = UploadResult(
            confirmed=sorted(state.confirmed),
            errors=sorted(state.errors, key=lambda e: e.index),
            interrupted=interrupted,
        )
        self._log_event(
            "upload_done",
            confirmed=len(result.confirmed),
            errors=len(result.errors),
            interrupted=interrupted,
            not_dispatched=queue.qsize(),
            abandoned=len(state.abandoned),
        )
        return result

    async def _worker(self, queue: "asyncio.Queue[ConfigLine]", cancel: CancelToken, state: _RunState) -> None:
        while True:
            if cancel.is_set() or state.aborted:
                return
            try:
                line = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            state.dispatched += 1
            await self._process(line, cancel, state)

    async def _process(self, line: ConfigLine, cancel: CancelToken, state: _RunState) -> None:
        policy = self.config.retry
        attempt = 0
        while True:
            attempt += 1
            if attempt > 1:
                if self.config.verify_before_retry and await self._already_written(line):
                    await self._confirm(line, state, source="verified")
                    return
                if cancel.is_set():
                    state.abandoned.append(line.index)
                    self._log_event("item_write_abandoned", index=line.index, attempts=attempt - 1)
                    return

            if self.metrics is not None:
                self.metrics.writes_submitted.inc()
            start = time.monotonic()
            try:
                await self.gateway.write_item(self.program_address, line)
            except Exception as exc:
                cls = classify_error(exc)
                if cls is ErrorClass.FATAL:
                    if state.fatal is None:
                        state.fatal = exc
                    return
                if cls is ErrorClass.TRANSIENT and attempt < policy.max_attempts:
                    # Cancelled: skip the backoff, the loop head verifies then stops
                    if not cancel.is_set():
                        delay = policy.delay(attempt)
                        self._log_event("item_write_retry", index=line.index, attempt=attempt, error=str(exc), delay=round(delay, 3))
                        if self.metrics is not None:
                            self.metrics.writes_retried.inc()
                        await asyncio.sleep(delay)
                    continue
                kind = error_kind(exc)
                state.errors.append(ItemError(index=line.index, message=str(exc), kind=kind, attempts=attempt))
                self._log_event("item_write_failed", index=line.index, kind=kind, attempts=attempt, error=str(exc))
                if self.metrics is not None:
                    self.metrics.writes_failed.labels(kind=kind).inc()
                return

            if self.metrics is not None:
                self.metrics.write_latency_ms.observe((time.monotonic() - start) * 1000.0)
            await self._confirm(line, state, source="write")
            return

    async def _already_written(self, line: ConfigLine) -> bool:
        """True when the remote slot already holds exactly this line."""
        try:
            stored = await self.gateway.read_item(self.program_address, line.index)
        except Exception as exc:
            self._log_event("item_verify_failed", index=line.index, error=str(exc))
            return False
        return stored is not None and stored.name == line.name and stored.uri == line.uri

    async def _confirm(self, line: ConfigLine, state: _RunState, source: str) -> None:
        try:
            await self._on_confirmed(line)
        except Exception as exc:
            # The write landed but could not be recorded; stop before diverging further.
            if state.fatal is None:
                state.fatal = exc
            return
        state.confirmed.append(line.index)
        if self.metrics is not None:
            self.metrics.writes_confirmed.labels(source=source).inc()
        if self._on_progress is not None:
            self._on_progress()
        self._log_event("item_confirmed", index=line.index, source=source)
