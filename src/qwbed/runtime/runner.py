"""Run orchestration: globals, then templates, then commands blocks."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console

from qwbed.ast import spec
from qwbed.config import Settings
from qwbed.exceptions import BedError
from qwbed.models import RunReport
from qwbed.progress import ProgressTracker
from qwbed.scheduler import Scheduler
from qwbed.templates import TemplateRenderer

from .environment import Environment
from .evaluator import Evaluator
from .executor import Executor
from .values import Artifact, Struct, format_value

log = logging.getLogger(__name__)


class UnknownCommandsBlock(BedError):
    def __init__(self, name: str, available: list[str]):
        self.name = name
        super().__init__(
            f"No commands block named '{name}' (available: {', '.join(available)})"
        )


def _describe(value) -> str:
    if isinstance(value, (str, Artifact, Struct)):
        return str(value)
    return format_value(value)


class BedRunner:
    """Runs a parsed configuration.

    One environment is threaded through every phase: globals seed it,
    each template leaves its assignments plus a read-only list of what it
    yielded, and each commands block then runs against the result with its
    own scheduler.

    Args:
        config: Configuration with includes already resolved.
        settings: Runtime settings.
        output_dir: Overrides both the settings and the `[output]` section.
        console: Where `print(...)` writes.
        tracker: Loop progress tracker.
    """

    def __init__(
        self,
        config: spec.Config,
        settings: Optional[Settings] = None,
        output_dir: Optional[Path] = None,
        console: Optional[Console] = None,
        tracker: Optional[ProgressTracker] = None,
    ):
        self.config = config
        self.settings = settings or Settings()
        self.base_dir = config.base_dir
        self.output_dir = self._output_dir(output_dir)
        self.console = console or Console()
        self.tracker = tracker or ProgressTracker(
            self.settings.resolve_progress_file(self.base_dir)
        )
        self.env = Environment()
        self.renderer = TemplateRenderer(
            config.search_paths or [self.base_dir],
            self.output_dir,
            self.base_dir,
            strict=self.settings.strict_templates,
        )
        self.report = RunReport(config=str(config.source) if config.source else None)
        self.artifacts: dict[str, list] = {}

    def _output_dir(self, override: Optional[Path]) -> Path:
        chosen = override or self.settings.output or self.config.output
        if chosen is None:
            return self.base_dir
        path = Path(chosen)
        return path if path.is_absolute() else self.base_dir / path

    @property
    def source(self) -> str:
        return str(self.config.source) if self.config.source else "<config>"

    def _executor(self, section: spec.SectionKind, **kwargs) -> Executor:
        renderer = self.renderer if section == spec.SectionKind.TEMPLATE else None
        evaluator = Evaluator(self.env, self.base_dir, renderer)
        return Executor(
            evaluator,
            section,
            console=self.console,
            tracker=self.tracker,
            source=self.source,
            **kwargs,
        )

    # -- phases ------------------------------------------------------------

    def run_globals(self) -> None:
        log.debug("Running [globals]")
        self._executor(spec.SectionKind.GLOBALS).run(self.config.globals)

    def run_template(self, template: spec.Template) -> list:
        """Run one template block and bind its name to what it yielded."""
        log.debug(f"Running [template.{template.name}]")
        registry: list = []
        self._executor(spec.SectionKind.TEMPLATE, registry=registry).run(template.body)
        self.env.declare_global(template.name, registry, readonly=True)
        self.artifacts[template.name] = registry
        self.report.artifacts[template.name] = [_describe(v) for v in registry]
        log.info(f"[template.{template.name}] yielded {len(registry)} artifact(s)")
        return registry

    def run_templates(self) -> None:
        for template in self.config.templates:
            self.run_template(template)

    def run_commands(self, block: spec.CommandBlock) -> Scheduler:
        """Run one commands block with a fresh scheduler, draining it at the end."""
        log.info(f"Running [{block.label}]")
        with Scheduler(
            block.label,
            self.settings.poll_interval,
            self.report,
            kill_on_error=self.settings.kill_on_error,
        ) as scheduler:
            self._executor(spec.SectionKind.COMMANDS, scheduler=scheduler).run(block.body)
        return scheduler

    def select(self, names: Optional[list[str]] = None) -> list[spec.CommandBlock]:
        """Commands blocks to run: all of them, or the named ones in the given order."""
        if not names:
            return list(self.config.commands)
        blocks = []
        for name in names:
            block = self.config.get_commands(name)
            if block is None:
                raise UnknownCommandsBlock(name, [b.label for b in self.config.commands])
            blocks.append(block)
        return blocks

    def run(self, commands: Optional[list[str]] = None) -> RunReport:
        """Run globals, every template and the selected commands blocks.

        Raises:
            BedError: On the first fatal error; live processes are killed.
        """
        try:
            blocks = self.select(commands)
            self.run_globals()
            self.run_templates()
            for block in blocks:
                self.run_commands(block)
        except BedError as exc:
            self.report.finish(str(exc))
            raise
        except KeyboardInterrupt:
            self.report.finish("interrupted")
            raise
        self.report.finish()
        return self.report
