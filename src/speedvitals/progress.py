# Copyright (c) Syntropy Systems
"""Progress reporting for analysis runs.

Reporters are purely observational: the scheduler calls them as work
completes, and they have no say in how the run proceeds.
"""
from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Protocol

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

if TYPE_CHECKING:
    from rich.console import Console


class ProgressReporter(Protocol):
    def start(self, total: int) -> None:
        ...

    def update(self, completed: int, message: str | None = None) -> None:
        ...

    def complete(self, message: str | None = None) -> None:
        ...

    def stop(self) -> None:
        """Release the display when a run ends without completing."""
        ...


class NullProgressReporter:
    """Reporter that discards every event."""

    def start(self, total: int) -> None:
        pass

    def update(self, completed: int, message: str | None = None) -> None:
        pass

    def complete(self, message: str | None = None) -> None:
        pass

    def stop(self) -> None:
        pass


class PlainProgressReporter:
    """Line-oriented reporter for CI logs and non-interactive terminals."""

    def __init__(self, console: Console) -> None:
        self.console = console
        self.total = 0
        self._lock = threading.Lock()

    def start(self, total: int) -> None:
        with self._lock:
            self.total = total
            self.console.print(f"Analyzing {total} URL(s)...")

    def update(self, completed: int, message: str | None = None) -> None:
        with self._lock:
            line = f"[{completed}/{self.total}] completed"
            if message:
                line += f" ({message})"
            self.console.print(line, highlight=False, markup=False)

    def complete(self, message: str | None = None) -> None:
        with self._lock:
            if message:
                self.console.print(message)

    def stop(self) -> None:
        pass


class RichProgressReporter:
    """Spinner and progress bar for interactive terminals."""

    def __init__(self, console: Console) -> None:
        self.console = console
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )
        self._task: TaskID | None = None

    def start(self, total: int) -> None:
        self._progress.start()
        self._task = self._progress.add_task("Analyzing", total=total)

    def update(self, completed: int, message: str | None = None) -> None:
        if self._task is None:
            return
        description = f"Analyzing ({message})" if message else "Analyzing"
        self._progress.update(self._task, completed=completed, description=description)

    def complete(self, message: str | None = None) -> None:
        if self._task is not None:
            task = self._progress.tasks[0]
            self._progress.update(self._task, completed=task.total, description="Done")
        self._progress.stop()
        if message:
            self.console.print(message)

    def stop(self) -> None:
        # Restores the cursor; safe to call when already stopped.
        self._progress.stop()

    @property
    def is_running(self) -> bool:
        return self._progress.live.is_started


def make_reporter(console: Console, *, is_ci: bool) -> ProgressReporter:
    """Pick a reporter suited to where output is going."""
    if is_ci or not console.is_terminal:
        return PlainProgressReporter(console)
    return RichProgressReporter(console)
