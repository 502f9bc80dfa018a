"""Process record model"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .status import ProcessState


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProcessRecord(BaseModel):
    """What the scheduler knows about one spawned process."""

    id: int
    block: str = "commands"
    program: str
    args: list[str] = []
    cwd: str = "."
    stdout: str | None = None  # None means inherited
    stderr: str | None = None

    state: ProcessState = ProcessState.SPAWNED
    pid: int | None = None
    exit_code: int | None = None
    error: str | None = None

    created_at: datetime = Field(default_factory=_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def command(self) -> list[str]:
        return [self.program, *self.args]

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def duration(self) -> float | None:
        """Seconds between start and finish, if both are known"""
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def mark_running(self, pid: int) -> None:
        self.state = ProcessState.RUNNING
        self.pid = pid
        self.started_at = _now()

    def mark_exited(self, exit_code: int) -> None:
        self.exit_code = exit_code
        self.state = ProcessState.EXITED if exit_code == 0 else ProcessState.FAILED
        self.finished_at = _now()

    def mark_killed(self, exit_code: int | None = None) -> None:
        self.exit_code = exit_code
        self.state = ProcessState.KILLED
        self.finished_at = _now()

    def mark_timed_out(self, exit_code: int | None = None) -> None:
        self.exit_code = exit_code
        self.state = ProcessState.TIMED_OUT
        self.error = "killed after wait_for timeout"
        self.finished_at = _now()
