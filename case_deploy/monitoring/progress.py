"""
Console progress for people watching a deployment.

Step lines look like "[2/3] Writing config lines"; the upload phase gets a
rich progress bar.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn


class StepReporter:
    def __init__(self, console: Optional[Console] = None, enabled: bool = True) -> None:
        self.console = console or Console(highlight=False)
        self.enabled = enabled

    def step(self, current: int, total: int, message: str) -> None:
        if self.enabled:
            self.console.print(f"\n[bold dim][{current}/{total}][/] {message}")

    def info(self, message: str) -> None:
        if self.enabled:
            self.console.print(message)

    def field(self, label: str, value: object) -> None:
        if self.enabled:
            self.console.print(f"[bold]{label}[/] {value}")

    def error(self, message: str) -> None:
        self.console.print(f"[bold red]{message}[/]")

    @contextmanager
    def items(self, total: int, description: str = "Writing") -> Iterator[Callable[[], None]]:
        """Yield an `advance()` callable backed by a progress bar."""
        if not self.enabled or total <= 0:
            yield lambda: None
            return
        progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        )
        with progress:
            task = progress.add_task(description, total=total)
            yield lambda: progress.advance(task)


class NullReporter(StepReporter):
    """Reporter that prints nothing (tests, library use)."""

    def __init__(self) -> None:
        super().__init__(console=Console(quiet=True), enabled=False)
        self.steps: list[tuple[int, int, str]] = []

    def step(self, current: int, total: int, message: str) -> None:
        self.steps.append((current, total, message))
