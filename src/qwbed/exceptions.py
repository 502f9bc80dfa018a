"""qwbed Exceptions

Every error raised while parsing or running a test bed derives from `BedError`.
Evaluation errors are fatal to the run; `WaitTimeout` is the only condition
that is reported and then execution continues.
"""

from __future__ import annotations


class BedError(Exception):
    """Base exception for all qwbed errors."""

    def __init__(self, message: str):
        self.message = message
        self.location: str | None = None
        super().__init__(message)

    def at(self, location: str) -> "BedError":
        """Attach a `file:line:col` location to the error (first one wins)."""
        if self.location is None:
            self.location = location
            self.args = (f"{location}: {self.message}",)
        return self


class BedSyntaxError(BedError):
    """Raised when a configuration is malformed."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        line: int | None = None,
        column: int | None = None,
        expected: list[str] | None = None,
        context: str | None = None,
    ):
        self.source = source
        self.line = line
        self.column = column
        self.expected = sorted(expected or [])
        self.context = context

        text = message
        if self.expected:
            text += f" (expected one of: {', '.join(self.expected)})"
        if context:
            text += f"\n{context}"
        super().__init__(text)
        if line is not None:
            self.at(f"{source or '<string>'}:{line}:{column or 0}")


class IncludeError(BedError):
    """Raised when an `[includes]` entry cannot be resolved."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Cannot include {path}: {reason}")


class EvalError(BedError):
    """Base class for errors raised while evaluating statements."""


class UndefinedVariable(EvalError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Undefined variable: {name}")


class RedeclarationError(EvalError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Variable already declared in this scope: {name} (use := to reassign)"
        )


class ReadOnlyError(EvalError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Variable is read-only: {name}")


class TypeMismatch(EvalError):
    def __init__(self, expected: str, got: object, context: str = ""):
        self.expected = expected
        self.got = type_name(got)
        where = f" in {context}" if context else ""
        super().__init__(f"Expected {expected}, got {self.got}{where}")


class IndexOutOfRange(EvalError):
    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__(f"Index {index} out of range for length {length}")


class FieldNotFound(EvalError):
    def __init__(self, owner: str, field: str):
        self.owner = owner
        self.field = field
        super().__init__(f"Field not found: {owner}.{field}")


class ShapeMismatch(EvalError):
    def __init__(self, lengths: list[int]):
        self.lengths = lengths
        shown = ", ".join(str(n) for n in lengths)
        super().__init__(f"Group loop iterables differ in length: {shown}")


class LoadError(BedError):
    """Raised when `load(...)` cannot read or decode a data file."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Failed to load {path}: {reason}")


class RenderError(BedError):
    """Raised when `build(...)` cannot render or write a template."""

    def __init__(self, template: str, reason: str):
        self.template = template
        super().__init__(f"Failed to render {template}: {reason}")


class SpawnError(BedError):
    """Raised when a process cannot be launched."""

    def __init__(self, program: str, reason: str):
        self.program = program
        super().__init__(f"Failed to spawn {program}: {reason}")


class WaitTimeout(BedError):
    """Condition returned by `wait_all` when live processes outlast the timeout.

    Never raised by the scheduler; it is logged and recorded instead.
    """

    def __init__(self, timeout_ms: int, pending: list[int]):
        self.timeout_ms = timeout_ms
        self.pending = list(pending)
        super().__init__(
            f"wait_all timed out after {timeout_ms}ms with {len(pending)} live process(es)"
        )


def type_name(value: object) -> str:
    """Human readable type name of a runtime value."""
    # Imported lazily: values imports this module.
    from qwbed.runtime.values import Artifact, Struct

    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, str):
        return "string"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, list):
        return "list"
    if isinstance(value, range):
        return "range"
    if isinstance(value, Struct):
        return "struct"
    if isinstance(value, Artifact):
        return "artifact"
    return type(value).__name__
