"""Jinja2 globals available to `build(...)` templates.

Relative paths in `shell` and `include_file` resolve against `__srcdir__`,
the directory of the configuration being run.
"""

from __future__ import annotations

import os
import secrets
import string
import subprocess
from pathlib import Path
from typing import Optional

from jinja2 import TemplateRuntimeError, pass_context

TOKEN_ALPHABET = string.ascii_uppercase + string.digits


def _srcdir(context) -> Optional[Path]:
    value = context.get("__srcdir__") if context is not None else None
    return Path(value) if value else None


def random_token(length: int = 8) -> str:
    """Random uppercase alphanumeric token, e.g. for unique names per render."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def env_var(name: str, default: str = "") -> str:
    return os.environ.get(name, default)


@pass_context
def shell(context, cmd: str, cwd: Optional[str] = None) -> str:
    """Output of a shell command, trailing whitespace stripped.

    Example:
        revision = "{{ shell('git rev-parse --short HEAD') }}"
    """
    workdir = Path(cwd) if cwd else _srcdir(context)
    proc = subprocess.run(cmd, shell=True, cwd=workdir, capture_output=True, text=True)
    if proc.returncode != 0:
        detail = proc.stderr.strip() or f"exit code {proc.returncode}"
        raise TemplateRuntimeError(f"shell({cmd!r}) failed: {detail}")
    return proc.stdout.rstrip()


@pass_context
def include_file(context, path: str) -> str:
    """Text of a file, e.g. `{{ include_file('keys/server.pub') }}`."""
    target = Path(path)
    base = _srcdir(context)
    if not target.is_absolute() and base is not None:
        target = base / target
    if not target.is_file():
        raise TemplateRuntimeError(f"include_file: no such file {target}")
    return target.read_text(encoding="utf-8")


def register(env) -> None:
    """Install the helper globals on a Jinja2 environment."""
    env.globals.update(
        random=random_token,
        env=env_var,
        shell=shell,
        include_file=include_file,
    )
