"""Include resolution.

`[includes]` entries are resolved relative to the file that names them. A
directory becomes a template search path; a file is parsed and merged in
front of the including unit, as if its text were spliced in before it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from qwbed.exceptions import BedSyntaxError, IncludeError

from . import spec
from .parser import parse_file, parse_text, validate_sections

log = logging.getLogger(__name__)


def _merge(base: spec.Config, fragment: spec.Config) -> None:
    """Merge `fragment` in front of what `base` has collected so far."""
    base.globals.extend(fragment.globals)
    base.templates.extend(fragment.templates)
    base.commands.extend(fragment.commands)
    for path in fragment.search_paths:
        if path not in base.search_paths:
            base.search_paths.append(path)
    if fragment.output is not None and base.output is None:
        base.output = str(fragment.base_dir / fragment.output)


def resolve_includes(config: spec.Config, _stack: tuple[Path, ...] = ()) -> spec.Config:
    """Return a new `Config` with every include of `config` merged in.

    Raises:
        IncludeError: If an include is missing or includes itself.
    """
    here = config.source
    stack = _stack + ((here,) if here else ())
    merged = spec.Config(source=here)

    for entry in config.includes:
        path = (config.base_dir / entry).resolve()
        if not path.exists():
            raise IncludeError(entry, f"{path} does not exist")
        if path.is_dir():
            log.debug(f"Template search path: {path}")
            if path not in merged.search_paths:
                merged.search_paths.append(path)
            continue
        if path in stack:
            chain = " -> ".join(str(p) for p in stack + (path,))
            raise IncludeError(entry, f"include cycle: {chain}")

        log.debug(f"Including {path}")
        fragment = resolve_includes(parse_file(path), stack)
        _merge(merged, fragment)

    own = spec.Config(
        source=here,
        output=config.output,
        globals=config.globals,
        templates=config.templates,
        commands=config.commands,
    )
    # The including file's own [output] takes precedence.
    if own.output is not None:
        merged.output = own.output
    _merge(merged, own)

    if config.base_dir not in merged.search_paths:
        merged.search_paths.append(config.base_dir)
    return validate_sections(merged)


def _finish(config: spec.Config) -> spec.Config:
    if not config.commands:
        raise BedSyntaxError(
            "Configuration needs at least one [commands] block",
            str(config.source) if config.source else None,
        )
    return config


def load_config(path: str | Path) -> spec.Config:
    """Parse a configuration file, resolve its includes and validate it.

    Args:
        path: Path to the configuration file.

    Returns:
        The merged `Config`, ready to run.

    Raises:
        BedSyntaxError: If the file (or an included file) is malformed.
        IncludeError: If an include cannot be resolved.
    """
    return _finish(resolve_includes(parse_file(path)))


def load_config_text(text: str, source: str | Path | None = None) -> spec.Config:
    """Like `load_config`, for configuration text already in memory."""
    return _finish(resolve_includes(parse_text(text, source)))
