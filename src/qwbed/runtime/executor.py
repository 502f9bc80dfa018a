"""Statement execution.

The same executor runs globals, template and commands blocks; the section
decides which collaborators are present (the yield registry for templates,
the scheduler for commands).
"""

from __future__ import annotations

import itertools
import logging
import math
from pathlib import Path
from typing import Any, Callable, Optional

from rich.console import Console

from qwbed.ast import spec
from qwbed.exceptions import BedError, EvalError, ShapeMismatch
from qwbed.progress import ProgressTracker
from qwbed.scheduler import OutputTarget, Scheduler, SpawnRequest

from .environment import Environment
from .evaluator import Evaluator
from .values import as_sequence, format_value, stringify

log = logging.getLogger(__name__)


class Executor:
    """Runs statement lists against one environment.

    Args:
        evaluator: Expression evaluator; its environment is the one mutated.
        section: The kind of block being run.
        scheduler: Process scheduler, required for commands blocks.
        registry: List that `yield` appends to, required for template blocks.
        console: Where `print(...)` writes.
        tracker: Loop progress tracker.
        source: File name used in error locations.
    """

    def __init__(
        self,
        evaluator: Evaluator,
        section: spec.SectionKind = spec.SectionKind.GLOBALS,
        scheduler: Optional[Scheduler] = None,
        registry: Optional[list] = None,
        console: Optional[Console] = None,
        tracker: Optional[ProgressTracker] = None,
        source: Optional[str] = None,
    ):
        self.evaluator = evaluator
        self.env: Environment = evaluator.env
        self.section = section
        self.scheduler = scheduler
        self.registry = registry
        self.console = console or Console()
        self.tracker = tracker or ProgressTracker()
        self.source = source or "<config>"
        self._dispatch: dict[type, Callable[[Any], None]] = {
            spec.Assign: self._assign,
            spec.Reassign: self._reassign,
            spec.Push: self._push,
            spec.Print: self._print,
            spec.If: self._if,
            spec.ForLoop: self._for,
            spec.Yield: self._yield,
            spec.Limit: lambda stmt: self._require_scheduler().set_limit(stmt.count),
            spec.Sleep: lambda stmt: self._require_scheduler().sleep(stmt.ms),
            spec.WaitAll: lambda stmt: self._require_scheduler().wait_all(stmt.timeout_ms),
            spec.WaitFor: self._wait_for,
            spec.Kill: lambda stmt: self._require_scheduler().kill(stmt.id),
            spec.Spawn: self._spawn,
        }

    @property
    def base_dir(self) -> Path:
        return self.evaluator.base_dir

    def run(self, statements: list[spec.Statement]) -> None:
        for stmt in statements:
            self.execute(stmt)

    def execute(self, stmt: spec.Statement) -> None:
        """Execute one statement; errors get tagged with its position."""
        try:
            self._dispatch[type(stmt)](stmt)
        except BedError as exc:
            raise exc.at(f"{self.source}:{stmt.line}:{stmt.column}")

    # -- bindings ----------------------------------------------------------

    def _assign(self, stmt: spec.Assign) -> None:
        value = self.evaluator.evaluate(stmt.value)
        self.env.declare(stmt.name, value, owned=not isinstance(stmt.value, spec.Access))

    def _reassign(self, stmt: spec.Reassign) -> None:
        value = self.evaluator.evaluate(stmt.value)
        self.env.reassign(stmt.name, value, owned=not isinstance(stmt.value, spec.Access))

    def _push(self, stmt: spec.Push) -> None:
        self.env.push(stmt.name, self.evaluator.stored(stmt.value))

    def _print(self, stmt: spec.Print) -> None:
        value = self.evaluator.evaluate(stmt.value)
        self.console.print(format_value(value), markup=False, highlight=False, soft_wrap=True)

    # -- control flow ------------------------------------------------------

    def _if(self, stmt: spec.If) -> None:
        if all(self.evaluator.truthy(cond) for cond in stmt.conditions):
            with self.env.child_scope():
                self.run(stmt.body)

    def _for(self, stmt: spec.ForLoop) -> None:
        sequences = []
        for iterable in stmt.iterables:
            seq = as_sequence(self.evaluator.evaluate(iterable), f"for {', '.join(stmt.targets)}")
            # Lengths are fixed when the loop starts.
            sequences.append(list(seq) if isinstance(seq, list) else seq)
        lengths = [len(seq) for seq in sequences]

        if stmt.kind == spec.LoopKind.GROUP:
            if len(set(lengths)) > 1:
                raise ShapeMismatch(lengths)
            rows = zip(*sequences)
            total = lengths[0] if lengths else 0
        else:
            rows = itertools.product(*sequences)
            total = math.prod(lengths)

        label = ",".join(stmt.targets)
        log.debug(f"Loop ({label}) {stmt.kind.value}: {total} iteration(s)")
        with self.tracker.loop(label, total) as advance:
            for index, row in enumerate(rows):
                advance(index)
                with self.env.child_scope():
                    for name, item in zip(stmt.targets, row):
                        self.env.declare(name, item, owned=False)
                    with self.env.child_scope():
                        self.run(stmt.body)

    # -- templates ---------------------------------------------------------

    def _yield(self, stmt: spec.Yield) -> None:
        if self.registry is None:
            raise EvalError("yield is only available in template blocks")
        self.registry.append(self.evaluator.stored(stmt.value))

    # -- processes ---------------------------------------------------------

    def _require_scheduler(self) -> Scheduler:
        if self.scheduler is None:
            raise EvalError("process statements are only available in commands blocks")
        return self.scheduler

    def _wait_for(self, stmt: spec.WaitFor) -> None:
        self._require_scheduler().wait_for(stmt.id, stmt.timeout_ms, stmt.retries)

    def _path(self, node: spec.StringBuilder) -> Path:
        path = Path(self.evaluator.evaluate(node))
        return path if path.is_absolute() else self.base_dir / path

    def _target(self, redirect: Optional[spec.Redirect]) -> OutputTarget:
        if redirect is None or redirect.mode == spec.RedirectMode.PRINT:
            return OutputTarget()
        return OutputTarget(redirect.mode, self._path(redirect.path))

    def _args(self, arg) -> list[str]:
        if isinstance(arg, spec.ArgText):
            return [stringify(self.evaluator.evaluate(arg.value), "spawn argument")]
        value = self.evaluator.resolve(arg.access)
        if isinstance(value, (list, range)):
            return [stringify(item, f"{{{arg.access}}}") for item in value]
        return [stringify(value, f"{{{arg.access}}}")]

    def _spawn(self, stmt: spec.Spawn) -> None:
        scheduler = self._require_scheduler()
        args: list[str] = []
        for arg in stmt.args:
            args.extend(self._args(arg))
        request = SpawnRequest(
            program=self.evaluator.evaluate(stmt.program),
            args=args,
            cwd=self._path(stmt.cwd) if stmt.cwd else self.base_dir,
            stdout=self._target(stmt.stdout),
            stderr=self._target(stmt.stderr),
            id=stmt.id,
        )
        self.tracker.write()
        scheduler.spawn(request)
