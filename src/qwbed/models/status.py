"""Process lifecycle states"""

from __future__ import annotations

from enum import Enum


class ProcessState(str, Enum):
    SPAWNED = "spawned"
    RUNNING = "running"
    EXITED = "exited"  # exit code 0
    FAILED = "failed"  # non-zero exit or signal
    KILLED = "killed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self not in (ProcessState.SPAWNED, ProcessState.RUNNING)
