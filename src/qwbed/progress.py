"""Loop progress reporting.

Every active `for` loop is tracked with its position. The summary is written
to a progress file before each spawn, and optionally shown as rich progress
bars (one per loop).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

log = logging.getLogger(__name__)


@dataclass
class LoopProgress:
    label: str
    total: int
    position: int = 0
    task_id: Optional[int] = None

    def summary(self) -> str:
        return f"{self.label} {self.position}/{self.total}"


def make_display() -> Progress:
    """Rich progress display with one bar per active loop."""
    return Progress(
        TextColumn("[bold dim]{task.description:<10}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        transient=True,
    )


class ProgressTracker:
    """Tracks nested loop positions.

    Args:
        progress_file: File rewritten with one `label position/total` line per
            active loop whenever `write()` is called.
        display: Optional rich `Progress` to mirror loop positions into.
    """

    def __init__(
        self,
        progress_file: Optional[Path] = None,
        display: Optional[Progress] = None,
    ):
        self.progress_file = progress_file
        self.display = display
        self._loops: list[LoopProgress] = []

    @property
    def active(self) -> list[LoopProgress]:
        return list(self._loops)

    @contextmanager
    def loop(self, label: str, total: int) -> Iterator[Callable[[int], None]]:
        """Track a loop; the yielded callback records the current iteration index."""
        entry = LoopProgress(label, total)
        if self.display is not None:
            entry.task_id = self.display.add_task(label, total=total)
        self._loops.append(entry)

        def advance(index: int) -> None:
            entry.position = index + 1
            if self.display is not None and entry.task_id is not None:
                self.display.update(entry.task_id, completed=index)

        try:
            yield advance
        finally:
            self._loops.remove(entry)
            if self.display is not None and entry.task_id is not None:
                self.display.remove_task(entry.task_id)

    def summary(self) -> str:
        return "\n".join(entry.summary() for entry in self._loops)

    def write(self) -> None:
        """Rewrite the progress file with the current loop positions."""
        if self.progress_file is None:
            return
        text = self.summary()
        try:
            self.progress_file.parent.mkdir(parents=True, exist_ok=True)
            self.progress_file.write_text(text + "\n" if text else "")
        except OSError as exc:
            log.warning(f"Cannot write progress file {self.progress_file}: {exc}")
