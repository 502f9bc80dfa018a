"""Process launching and redirection.

Executes spawned commands on the local machine via subprocess. The parent's
copies of redirection handles are closed right after launch; the child keeps
its own.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Optional

from qwbed.ast.spec import RedirectMode
from qwbed.exceptions import SpawnError
from qwbed.models import ProcessRecord

log = logging.getLogger(__name__)


@dataclass
class OutputTarget:
    """Where a child's stdout or stderr goes."""

    mode: RedirectMode = RedirectMode.PRINT
    path: Optional[Path] = None

    def open(self) -> Optional[IO[bytes]]:
        """Open the target file, or return None to inherit the parent's stream."""
        if self.mode == RedirectMode.PRINT or self.path is None:
            return None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return open(self.path, "ab" if self.mode == RedirectMode.APPEND else "wb")

    def describe(self) -> Optional[str]:
        if self.mode == RedirectMode.PRINT or self.path is None:
            return None
        prefix = ">>" if self.mode == RedirectMode.APPEND else ">"
        return f"{prefix}{self.path}"


@dataclass
class SpawnRequest:
    """A fully evaluated `spawn` statement."""

    program: str
    args: list[str] = field(default_factory=list)
    cwd: Optional[Path] = None
    stdout: OutputTarget = field(default_factory=OutputTarget)
    stderr: OutputTarget = field(default_factory=OutputTarget)
    id: Optional[int] = None

    @property
    def command(self) -> list[str]:
        return [self.program, *self.args]


class ManagedProcess:
    """A live child process plus its record."""

    def __init__(self, popen: subprocess.Popen, record: ProcessRecord):
        self.popen = popen
        self.record = record

    @property
    def id(self) -> int:
        return self.record.id

    @classmethod
    def launch(cls, pid: int, request: SpawnRequest, block: str = "commands") -> "ManagedProcess":
        """Start the process described by `request`.

        Raises:
            SpawnError: If the program cannot be started or a redirect target
                cannot be opened.
        """
        record = ProcessRecord(
            id=pid,
            block=block,
            program=request.program,
            args=request.args,
            cwd=str(request.cwd) if request.cwd else ".",
            stdout=request.stdout.describe(),
            stderr=request.stderr.describe(),
        )

        handles: list[IO[bytes]] = []
        try:
            stdout = request.stdout.open()
            if stdout is not None:
                handles.append(stdout)
            stderr = request.stderr.open()
            if stderr is not None:
                handles.append(stderr)

            popen = subprocess.Popen(
                request.command,
                cwd=request.cwd,
                stdout=stdout,
                stderr=stderr,
                stdin=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise SpawnError(request.program, exc.strerror or str(exc)) from exc
        finally:
            for handle in handles:
                handle.close()

        record.mark_running(popen.pid)
        log.info(f"[{pid}] spawned {' '.join(request.command)} (pid {popen.pid})")
        return cls(popen, record)

    def poll(self) -> Optional[int]:
        """Return the exit code once the process has exited, updating the record."""
        code = self.popen.poll()
        if code is not None and not self.record.is_terminal:
            self.record.mark_exited(code)
            if code == 0:
                log.info(f"[{self.id}] {self.record.program} exited")
            else:
                log.warning(f"[{self.id}] {self.record.program} exited with code {code}")
        return code

    def kill(self, timed_out: bool = False) -> None:
        """Kill the process and wait for it to be reaped.

        A process that already exited keeps its exit state.
        """
        if self.poll() is not None:
            return
        self.popen.kill()
        code = self.popen.wait()
        if timed_out:
            self.record.mark_timed_out(code)
            log.warning(f"[{self.id}] {self.record.program} killed after timeout")
        else:
            self.record.mark_killed(code)
            log.warning(f"[{self.id}] {self.record.program} killed")
