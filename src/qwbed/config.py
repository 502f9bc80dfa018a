"""Runtime settings from qwbed.yaml"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from qwbed.exceptions import BedError

SETTINGS_FILE = "qwbed.yaml"
PROGRESS_ENV = "QWBED_PROGRESS"


class SettingsError(BedError):
    """Raised when qwbed.yaml is malformed."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"Invalid settings in {path}: {reason}")


class Settings(BaseModel):
    """Settings that tune a run without changing the configuration itself."""

    poll_interval_ms: int = Field(default=50, ge=1)
    strict_templates: bool = True
    output: str | None = None  # overrides [output]
    progress_file: str | None = None
    kill_on_error: bool = True

    model_config = {"extra": "forbid"}

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000

    def resolve_progress_file(self, base_dir: Path) -> Path | None:
        """Progress file path; the QWBED_PROGRESS env var wins over the file."""
        value = os.environ.get(PROGRESS_ENV) or self.progress_file
        if not value:
            return None
        path = Path(value)
        return path if path.is_absolute() else base_dir / path

    @classmethod
    def load(cls, path: Path) -> "Settings":
        """Load settings from a yaml file; a missing file gives defaults."""
        if not path.exists():
            return cls()

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise SettingsError(path, str(exc)) from exc

        if not isinstance(data, dict):
            raise SettingsError(path, "expected a mapping")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise SettingsError(path, str(exc)) from exc


def find_settings_file(start: Path) -> Path | None:
    """Find qwbed.yaml in `start` or its parents."""
    start = start.resolve()
    for parent in [start] + list(start.parents):
        candidate = parent / SETTINGS_FILE
        if candidate.exists():
            return candidate
    return None


def load_settings(config_dir: Path, explicit: Path | None = None) -> Settings:
    """Settings for a configuration in `config_dir`, or from `explicit`."""
    path = explicit or find_settings_file(config_dir)
    if path is None:
        return Settings()
    return Settings.load(path)
