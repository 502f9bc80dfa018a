"""Process scheduler for one commands block.

The scheduler owns the live-process pool. It is only ever driven from the
control thread, which observes exits by polling: while waiting for a free
slot, in `wait_all`, in `wait_for` and when the block drains.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Optional

from qwbed.exceptions import WaitTimeout
from qwbed.models import ProcessRecord, RunReport, TimeoutRecord

from .process import ManagedProcess, SpawnRequest

log = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.05


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"


class Scheduler:
    """Spawns and supervises the processes of one commands block.

    Use it as a context manager: leaving the block normally drains every
    live process, leaving it with an exception (including Ctrl-C) kills them.

    Args:
        block: Label of the commands block, used in records and logs.
        poll_interval: Seconds between exit polls.
        report: Run report that receives process records and timeouts.
        kill_on_error: Kill live processes when the block fails; otherwise
            wait for them. Ctrl-C always kills.
    """

    def __init__(
        self,
        block: str = "commands",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        report: Optional[RunReport] = None,
        kill_on_error: bool = True,
    ):
        self.block = block
        self.kill_on_error = kill_on_error
        self.poll_interval = poll_interval
        self.report = report
        self.state = SchedulerState.IDLE
        self.limit = 0
        self.live: dict[int, ManagedProcess] = {}
        self.records: list[ProcessRecord] = []
        self.timeouts: list[WaitTimeout] = []
        self._used_ids: set[int] = set()
        self._next_id = 0

    def __enter__(self) -> "Scheduler":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None or (
            not self.kill_on_error and not issubclass(exc_type, KeyboardInterrupt)
        ):
            self.drain()
        else:
            self.shutdown()
        return False

    # -- pool bookkeeping --------------------------------------------------

    def reap(self) -> list[ProcessRecord]:
        """Drop exited processes from the live pool and return their records."""
        done = []
        for pid, proc in list(self.live.items()):
            if proc.poll() is not None:
                del self.live[pid]
                done.append(proc.record)
        return done

    def _allocate_id(self) -> int:
        while self._next_id in self._used_ids:
            self._next_id += 1
        pid = self._next_id
        self._next_id += 1
        return pid

    def _wait_for_slot(self) -> None:
        self.reap()
        if self.limit and len(self.live) >= self.limit:
            log.debug(f"{len(self.live)} live process(es) at limit {self.limit}, waiting")
        while self.limit and len(self.live) >= self.limit:
            time.sleep(self.poll_interval)
            self.reap()

    # -- statements --------------------------------------------------------

    def set_limit(self, limit: int) -> None:
        """Cap concurrently live processes for later spawns; 0 means unbounded."""
        self.limit = limit
        log.debug(f"Spawn limit set to {limit or 'unbounded'}")

    def spawn(self, request: SpawnRequest) -> int:
        """Launch a process, blocking first until the concurrency limit allows it.

        Returns:
            The id assigned to the process.

        Raises:
            SpawnError: If the process cannot be launched.
        """
        self.state = SchedulerState.RUNNING
        self._wait_for_slot()

        pid = request.id if request.id is not None else self._allocate_id()
        previous = self.live.pop(pid, None)
        if previous is not None:
            log.warning(f"Process id {pid} is still running; killing it before reuse")
            previous.kill()

        proc = ManagedProcess.launch(pid, request, self.block)
        self._used_ids.add(pid)
        self.live[pid] = proc
        self.records.append(proc.record)
        if self.report is not None:
            self.report.processes.append(proc.record)
        return pid

    def sleep(self, ms: int) -> None:
        time.sleep(ms / 1000)

    def wait_all(self, timeout_ms: Optional[int] = None) -> Optional[WaitTimeout]:
        """Wait until every live process has exited.

        Returns:
            None when the pool is empty, or a `WaitTimeout` when `timeout_ms`
            elapsed first. Processes still running stay live and tracked.
        """
        deadline = None if timeout_ms is None else time.monotonic() + timeout_ms / 1000
        while True:
            self.reap()
            if not self.live:
                return None
            now = time.monotonic()
            if deadline is not None and now >= deadline:
                return self._timed_out(timeout_ms)
            delay = self.poll_interval
            if deadline is not None:
                delay = min(delay, deadline - now)
            time.sleep(delay)

    def _timed_out(self, timeout_ms: int) -> WaitTimeout:
        condition = WaitTimeout(timeout_ms, sorted(self.live))
        log.warning(f"[{self.block}] {condition}")
        self.timeouts.append(condition)
        if self.report is not None:
            self.report.timeouts.append(
                TimeoutRecord(block=self.block, timeout_ms=timeout_ms, pending=condition.pending)
            )
        return condition

    def wait_for(
        self, pid: int, timeout_ms: Optional[int] = None, retries: Optional[int] = None
    ) -> bool:
        """Wait for one process by id.

        With a timeout, the process is polled `retries` times spaced
        `timeout_ms / retries` apart and killed if it is still running.

        Returns:
            True if the process exited on its own.
        """
        proc = self.live.get(pid)
        if proc is None:
            if pid not in self._used_ids:
                log.warning(f"wait_for: no process with id {pid}")
                return False
            return True

        if timeout_ms is None:
            while proc.poll() is None:
                time.sleep(self.poll_interval)
            del self.live[pid]
            return True

        attempts = retries or 1
        interval = timeout_ms / 1000 / attempts
        for _ in range(attempts):
            if proc.poll() is not None:
                del self.live[pid]
                return True
            time.sleep(interval)

        del self.live[pid]
        if proc.poll() is not None:
            return True
        proc.kill(timed_out=True)
        return False

    def kill(self, pid: int) -> None:
        proc = self.live.pop(pid, None)
        if proc is None:
            log.warning(f"kill: no live process with id {pid}")
            return
        proc.kill()

    # -- lifecycle ---------------------------------------------------------

    def drain(self) -> None:
        """Wait for every live process; called when the block ends."""
        self.state = SchedulerState.DRAINING
        if self.live:
            log.info(f"[{self.block}] waiting for {len(self.live)} process(es)")
        self.wait_all()
        self.state = SchedulerState.DONE

    def shutdown(self) -> None:
        """Kill every live process."""
        for pid, proc in list(self.live.items()):
            proc.kill()
            del self.live[pid]
        self.state = SchedulerState.DONE
