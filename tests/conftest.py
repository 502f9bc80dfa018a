"""Shared fixtures for qwbed tests."""

from __future__ import annotations

import io
import json
import sys
from pathlib import Path

import pytest
from rich.console import Console

from qwbed.ast import load_config
from qwbed.config import Settings
from qwbed.runtime.runner import BedRunner

# Quoted interpreter path, ready to drop into a configuration string literal.
PYTHON = json.dumps(sys.executable)


class Bed:
    """Writes a configuration into a temp dir and runs it."""

    def __init__(self, root: Path):
        self.root = root
        self.output = io.StringIO()

    def write(self, text: str, name: str = "bed.conf") -> Path:
        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    def runner(self, text: str, **settings) -> BedRunner:
        config = load_config(self.write(text))
        console = Console(file=self.output, width=200, color_system=None)
        return BedRunner(config, Settings(poll_interval_ms=10, **settings), console=console)

    def run(self, text: str, commands: list[str] | None = None, **settings) -> BedRunner:
        runner = self.runner(text, **settings)
        runner.run(commands)
        return runner

    @property
    def printed(self) -> list[str]:
        return self.output.getvalue().splitlines()


@pytest.fixture
def bed(tmp_path: Path) -> Bed:
    return Bed(tmp_path)
