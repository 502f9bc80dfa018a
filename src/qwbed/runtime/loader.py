"""Structured data loader behind `load(path)`."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import msgspec

from qwbed.exceptions import LoadError

from .values import Struct, Value

log = logging.getLogger(__name__)

DECODERS = {
    ".json": msgspec.json.decode,
    ".yaml": msgspec.yaml.decode,
    ".yml": msgspec.yaml.decode,
    ".toml": msgspec.toml.decode,
}


def to_value(data: Any, name: str) -> Value:
    """Convert decoded data into runtime values.

    Mappings become structs named after `name` (or their own `name` string
    field), floats become their text form and null becomes "".
    """
    if isinstance(data, dict):
        fields = {str(key): to_value(val, str(key)) for key, val in data.items()}
        own = data.get("name")
        return Struct(own if isinstance(own, str) else name, fields)
    if isinstance(data, list):
        return [to_value(item, name) for item in data]
    if data is None:
        return ""
    if isinstance(data, (bool, int, str)):
        return data
    return str(data)


def load_data(path: str | Path, base_dir: Path | None = None) -> Value:
    """Read and decode a JSON, YAML or TOML file.

    Args:
        path: File to read, relative to `base_dir` unless absolute.
        base_dir: Directory relative paths are resolved against.

    Returns:
        The decoded value tree.

    Raises:
        LoadError: If the file is unreadable, has an unknown extension or
            does not decode.
    """
    p = Path(path)
    if not p.is_absolute() and base_dir is not None:
        p = base_dir / p

    decode = DECODERS.get(p.suffix.lower())
    if decode is None:
        raise LoadError(str(path), f"unsupported file type '{p.suffix}'")

    try:
        raw = p.read_bytes()
    except OSError as exc:
        raise LoadError(str(path), exc.strerror or str(exc)) from exc

    try:
        data = decode(raw)
    except msgspec.DecodeError as exc:
        raise LoadError(str(path), str(exc)) from exc

    log.debug(f"Loaded {p}")
    return to_value(data, p.stem)
