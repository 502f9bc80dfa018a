"""Run report model"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from .record import ProcessRecord
from .status import ProcessState


class TimeoutRecord(BaseModel):
    """A `wait_all` that returned before every live process exited."""

    block: str
    timeout_ms: int
    pending: list[int] = []
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RunReport(BaseModel):
    """Everything a run produced: processes, timeouts and artifacts."""

    config: str | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    processes: list[ProcessRecord] = []
    timeouts: list[TimeoutRecord] = []
    artifacts: dict[str, list[str]] = {}
    error: str | None = None

    @property
    def failed(self) -> list[ProcessRecord]:
        """Processes that did not exit cleanly"""
        return [p for p in self.processes if p.state != ProcessState.EXITED]

    def finish(self, error: str | None = None) -> None:
        self.finished_at = datetime.now(timezone.utc)
        self.error = error

    def save(self, path: Path) -> Path:
        """Write the report as JSON"""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2))
        return path

    @classmethod
    def load(cls, path: Path) -> "RunReport":
        return cls.model_validate_json(path.read_text())
