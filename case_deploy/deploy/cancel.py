"""
Cooperative cancellation token.

Set by the operator (SIGINT handler in the CLI, or a test), checked by the
uploader before each new dispatch, cleared by the orchestrator at the start
of every write phase. Backed by threading.Event so a signal handler running
outside the event loop can set it safely.
"""

from __future__ import annotations

import threading


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def clear(self) -> None:
        self._event.clear()

    def is_set(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancelToken(set={self.is_set()})"
