"""Runtime values.

Scalars, lists and ranges are plain Python objects (`str`, `int`, `bool`,
`list`, `range`). Structs and build artifacts have their own classes so they
can carry a base string alongside their fields.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Union

from qwbed.exceptions import TypeMismatch


@dataclass
class Struct:
    """A named record: a base string plus ordered fields.

    Interpolating a struct yields its name. Fields are reachable as
    attributes and items so templates can write `{{ server.port }}`.
    """

    name: str
    fields: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.name

    def __getattr__(self, key: str) -> Any:
        if key.startswith("_") or key == "fields":
            raise AttributeError(key)
        try:
            return self.__dict__["fields"][key]
        except KeyError:
            raise AttributeError(key) from None

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def __contains__(self, key: str) -> bool:
        return key in self.fields


@dataclass(frozen=True)
class Artifact:
    """Result of `build(...)`: a rendered file plus named properties."""

    source_path: str
    output_path: str
    properties: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.output_path

    def __getattr__(self, key: str) -> Any:
        if key.startswith("_") or key == "properties":
            raise AttributeError(key)
        try:
            return self.__dict__["properties"][key]
        except KeyError:
            raise AttributeError(key) from None

    def __getitem__(self, key: str) -> Any:
        return self.get_field(key)

    def get_field(self, key: str) -> Any:
        if key == "source_path":
            return self.source_path
        if key == "output_path":
            return self.output_path
        return self.properties[key]

    def with_properties(self, extra: dict[str, Any]) -> "Artifact":
        return Artifact(self.source_path, self.output_path, {**self.properties, **extra})


Value = Union[str, int, bool, list, range, Struct, Artifact]


def make_range(lo: int, hi: int) -> range:
    """Half-open range from `lo` to `hi`, descending when `lo > hi`."""
    if lo <= hi:
        return range(lo, hi)
    return range(lo, hi, -1)


def clone(value: Value) -> Value:
    """Independent deep copy of a value."""
    return copy.deepcopy(value)


def is_true(value: Value) -> bool:
    """Truthiness for `if`: only the string "false" and Boolean false are false."""
    if isinstance(value, bool):
        return value
    return value != "false"


def stringify(value: Value, context: str = "") -> str:
    """Text form of a scalar, struct or artifact.

    Raises:
        TypeMismatch: For lists and ranges.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int)):
        return str(value)
    if isinstance(value, (Struct, Artifact)):
        return str(value)
    raise TypeMismatch("a string, integer, struct or artifact", value, context)


def to_int(value: Value, context: str = "") -> int:
    """Integer value of an integer or a decimal string."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise TypeMismatch("an integer", value, context)


def as_sequence(value: Value, context: str = "") -> Union[list, range]:
    if isinstance(value, (list, range)):
        return value
    raise TypeMismatch("a list or range", value, context)


def format_value(value: Value) -> str:
    """Render a value in the configuration language's literal syntax."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, range):
        return f"{value.start}..{value.stop}"
    if isinstance(value, list):
        return "[" + ", ".join(format_value(item) for item in value) + "]"
    if isinstance(value, Struct):
        return _with_fields(format_value(value.name), value.fields)
    if isinstance(value, Artifact):
        head = f"build({format_value(value.source_path)}, {format_value(value.output_path)})"
        return _with_fields(head, value.properties)
    return repr(value)


def _with_fields(head: str, fields: dict[str, Any]) -> str:
    if not fields:
        return head
    body = ", ".join(f"{key} = {format_value(val)}" for key, val in fields.items())
    return f"{head} {{ {body} }}"
