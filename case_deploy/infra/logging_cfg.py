"""
Structured logging for deploy runs.

Every component logs one JSON object per event on the "case" logger. The
console gets them through Rich for people; the log file gets one JSON line
per record, written by a background thread so a slow disk never stalls
the uploader's event loop.
"""

from __future__ import annotations

import atexit
import json
import logging
import queue
import sys
import threading
import time
from datetime import datetime
from typing import Any, Dict, Optional, Set, Tuple

from rich.logging import RichHandler

LOGGER_NAME = "case"

CRITICAL = logging.CRITICAL  # Cache and remote disagree
ERROR = logging.ERROR        # Run failed
WARNING = logging.WARNING    # Retries, failed items
INFO = logging.INFO          # Account created, phase changes, run summary
DEBUG = logging.DEBUG        # One line per confirmed item

_STOP = object()


def _event_payload(message: str) -> Optional[Dict[str, Any]]:
    if not message.startswith("{"):
        return None
    try:
        data = json.loads(message)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) and "event" in data else None


class JsonFormatter(logging.Formatter):
    """One JSON line per record; event payloads are inlined, not double-encoded."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        out: Dict[str, Any] = {
            "ts": round(record.created, 3),
            "ts_iso": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
        }
        payload = _event_payload(message)
        if payload is not None:
            out.update(payload)
        else:
            out["msg"] = message
        if record.exc_info:
            out["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(out, separators=(",", ":"), default=str)


class BackgroundFileHandler(logging.Handler):
    """
    Hands records to a writer thread that owns the real file handler.

    Records are dropped (and counted) rather than blocking when the queue is full.
    """

    def __init__(self, target: logging.Handler, max_queue_size: int = 10000) -> None:
        super().__init__()
        self._target = target
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=max_queue_size)
        self._closed = False
        self.dropped = 0
        self._thread = threading.Thread(target=self._drain, daemon=True, name="case-log-writer")
        self._thread.start()
        atexit.register(self.close)

    def emit(self, record: logging.LogRecord) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1

    def flush(self) -> None:
        """Block until every queued record has reached the file."""
        if self._thread.is_alive():
            self._queue.join()
        self._target.flush()

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._target.handle(item)
            except Exception:
                self._target.handleError(item)
            finally:
                self._queue.task_done()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put(_STOP, timeout=1.0)
        except queue.Full:
            pass
        self._thread.join(timeout=2.0)
        if self.dropped:
            sys.stderr.write(f"[case] {self.dropped} log record(s) dropped, log queue was full\n")
        self._target.close()
        super().close()


class ThrottledFilter(logging.Filter):
    """
    Lets the first retry event for a given error through, then hides repeats
    of the same (event, error) pair for `cooldown_sec`. Hidden records are
    counted in `suppressed`.
    """

    def __init__(self, cooldown_sec: float = 30.0, throttled_events: Optional[Set[str]] = None):
        super().__init__()
        self._cooldown = cooldown_sec
        self._throttled = throttled_events or {"item_write_retry", "item_verify_failed"}
        self._last_seen: Dict[Tuple[str, str], float] = {}
        self.suppressed: Dict[Tuple[str, str], int] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        payload = _event_payload(record.getMessage())
        if payload is None or payload["event"] not in self._throttled:
            return True

        key = (payload["event"], str(payload.get("error", "")))
        now = time.monotonic()
        last = self._last_seen.get(key)
        if last is not None and now - last < self._cooldown:
            self.suppressed[key] = self.suppressed.get(key, 0) + 1
            return False
        self._last_seen[key] = now
        return True


def build_logger(
    name: str = LOGGER_NAME,
    level: int = logging.INFO,
    file_path: Optional[str] = "case.log",
    async_file: bool = True,
    throttle_warnings: bool = True,
) -> logging.Logger:
    """
    Configure the deploy logger once; later calls only adjust the level.

    Args:
        file_path: JSON lines log file, None to log to the console only
        async_file: write the file from a background thread
        throttle_warnings: collapse repeated retry warnings on the console
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        for h in logger.handlers:
            h.setLevel(level)
        return logger

    console = RichHandler(show_path=False, markup=False, rich_tracebacks=False)
    console.setFormatter(logging.Formatter("%(message)s"))
    console.setLevel(level)
    if throttle_warnings:
        console.addFilter(ThrottledFilter())
    logger.addHandler(console)

    if file_path:
        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setFormatter(JsonFormatter())
        handler: logging.Handler = BackgroundFileHandler(file_handler) if async_file else file_handler
        handler.setLevel(level)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def flush_logger(logger: logging.Logger) -> None:
    for h in logger.handlers:
        h.flush()


def parse_level(name: Optional[str], default: int = logging.INFO) -> int:
    """Map 'debug' / 'INFO' / 'off' to a logging level."""
    if not name:
        return default
    name = name.strip().upper()
    if name == "OFF":
        return logging.CRITICAL + 10
    if name == "TRACE":
        return logging.DEBUG
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **data: Any) -> None:
    """
    Usage:
        log_event(log, "tars_created", tars=address, size=size)
    """
    logger.log(level, json.dumps({"event": event, **data}, default=str))
