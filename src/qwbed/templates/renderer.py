"""Template rendering behind `build(...)`."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any, Optional

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    TemplateSyntaxError,
    Undefined,
)

from qwbed.exceptions import RenderError
from qwbed.runtime.values import Artifact

from . import extensions

log = logging.getLogger(__name__)


class TemplateRenderer:
    """Renders templates from the search paths into the output directory.

    Args:
        search_paths: Directories templates are looked up in, in order.
        output_dir: Base directory for rendered files.
        base_dir: Configuration directory, exposed to templates as `__srcdir__`.
        strict: Fail on undefined template variables instead of rendering "".
    """

    def __init__(
        self,
        search_paths: list[Path],
        output_dir: Path,
        base_dir: Optional[Path] = None,
        strict: bool = True,
    ):
        self.search_paths = [Path(p) for p in search_paths]
        self.output_dir = Path(output_dir)
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.env = Environment(
            loader=FileSystemLoader([str(p) for p in self.search_paths]),
            undefined=StrictUndefined if strict else Undefined,
            keep_trailing_newline=True,
        )
        extensions.register(self.env)

    def _load(self, template: str):
        path = Path(template)
        if path.is_absolute():
            if not path.is_file():
                raise RenderError(template, "template file not found")
            return self.env.from_string(path.read_text(encoding="utf-8")), str(path)
        try:
            tmpl = self.env.get_template(path.as_posix())
        except TemplateNotFound:
            searched = ", ".join(str(p) for p in self.search_paths)
            raise RenderError(template, f"not found in search path ({searched})") from None
        return tmpl, tmpl.filename or template

    def resolve_output(self, output: str) -> Path:
        path = Path(output)
        if path.is_absolute():
            return path
        return self.output_dir / path

    def build(
        self,
        template: str,
        output: str,
        properties: dict[str, Any],
        context: dict[str, Any],
    ) -> Artifact:
        """Render `template` with `context` and write it to `output`.

        Returns:
            The `Artifact` describing the rendered file.

        Raises:
            RenderError: If the template is missing or invalid, references an
                undefined variable, or the output cannot be written.
        """
        try:
            tmpl, source = self._load(template)
            text = tmpl.render({"__srcdir__": str(self.base_dir), **context})
        except TemplateSyntaxError as exc:
            raise RenderError(template, f"line {exc.lineno}: {exc.message}") from exc
        except TemplateError as exc:
            raise RenderError(template, str(exc)) from exc
        except (OSError, subprocess.SubprocessError) as exc:
            raise RenderError(template, str(exc)) from exc

        out = self.resolve_output(output)
        try:
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise RenderError(template, f"cannot write {out}: {exc.strerror or exc}") from exc

        log.info(f"Rendered {template} -> {out}")
        return Artifact(str(source), str(out), properties)
