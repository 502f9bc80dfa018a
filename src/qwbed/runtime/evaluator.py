"""Expression evaluation.

Access chains resolve to the stored object itself, so a bare `x = a.b;` aliases.
An access placed inside a list, a struct field, a push or a yield is copied,
so the new value never shares state with its source.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

from qwbed.ast import spec
from qwbed.exceptions import (
    EvalError,
    FieldNotFound,
    IndexOutOfRange,
    TypeMismatch,
)

from .environment import Environment
from .loader import load_data
from .values import (
    Artifact,
    Struct,
    Value,
    as_sequence,
    clone,
    is_true,
    make_range,
    stringify,
    to_int,
)

if TYPE_CHECKING:
    from qwbed.templates import TemplateRenderer

log = logging.getLogger(__name__)


class Evaluator:
    """Evaluates expression nodes against an environment.

    Args:
        env: The environment to resolve names in.
        base_dir: Directory `load(...)` paths are relative to.
        renderer: Template renderer used by `build(...)`.
    """

    def __init__(
        self,
        env: Environment,
        base_dir: Optional[Path] = None,
        renderer: Optional["TemplateRenderer"] = None,
    ):
        self.env = env
        self.base_dir = base_dir or Path.cwd()
        self.renderer = renderer
        self._dispatch: dict[type, Callable[[Any], Value]] = {
            spec.StringBuilder: self._string_builder,
            spec.Interpolation: self._interpolation,
            spec.IntLiteral: lambda node: node.value,
            spec.ListLiteral: self._list,
            spec.ObjectLiteral: self._object,
            spec.RangeLiteral: self._range,
            spec.Access: self.resolve,
            spec.Clone: lambda node: clone(self.resolve(node.access)),
            spec.Build: self._build,
            spec.Load: self._load,
        }

    def evaluate(self, expr: spec.Expr) -> Value:
        try:
            handler = self._dispatch[type(expr)]
        except KeyError:
            raise TypeError(f"Not an expression: {type(expr).__name__}") from None
        return handler(expr)

    # -- access ------------------------------------------------------------

    def resolve(self, access: spec.Access) -> Value:
        """Walk an access chain left to right and return the value it names.

        Raises:
            UndefinedVariable: If the root name is unbound.
            TypeMismatch: If a step does not fit the value it is applied to.
            IndexOutOfRange: If an index is outside the list or range.
            FieldNotFound: If a struct or artifact lacks the field.
        """
        value = self.env.lookup(access.name)
        path = access.name
        for step in access.steps:
            if isinstance(step, spec.FieldStep):
                value = self._field(value, step.name, path)
                path += f".{step.name}"
            else:
                value = self._index(value, step.index, path)
                path += f"[{step.index}]"
        return value

    def _field(self, value: Value, name: str, path: str) -> Value:
        if isinstance(value, Struct):
            if name not in value.fields:
                raise FieldNotFound(path, name)
            return value.fields[name]
        if isinstance(value, Artifact):
            try:
                return value.get_field(name)
            except KeyError:
                raise FieldNotFound(path, name) from None
        raise TypeMismatch("a struct", value, f"{path}.{name}")

    def _index(self, value: Value, index, path: str) -> Value:
        if isinstance(index, spec.Access):
            index = to_int(self.resolve(index), f"index {index}")
        sequence = as_sequence(value, f"{path}[{index}]")
        if index < 0 or index >= len(sequence):
            raise IndexOutOfRange(index, len(sequence))
        return sequence[index]

    def truthy(self, access: spec.Access) -> bool:
        """Condition value of an `if` access: unresolvable counts as false."""
        try:
            value = self.resolve(access)
        except EvalError as exc:
            log.debug(f"Condition {access} is unresolvable: {exc}")
            return False
        return is_true(value)

    # -- literals ----------------------------------------------------------

    def _interpolation(self, node: spec.Interpolation) -> str:
        return stringify(self.resolve(node.access), f"[{node.access}]")

    def _string_builder(self, node: spec.StringBuilder) -> str:
        pieces = []
        for part in node.parts:
            if isinstance(part, spec.Text):
                pieces.append(part.value)
            else:
                pieces.append(self._interpolation(part))
        return "".join(pieces)

    def stored(self, expr: spec.Expr) -> Value:
        """Value of `expr` for storing inside another value; accesses are cloned."""
        value = self.evaluate(expr)
        return clone(value) if isinstance(expr, spec.Access) else value

    def _list(self, node: spec.ListLiteral) -> list:
        return [self.stored(item) for item in node.items]

    def _object(self, node: spec.ObjectLiteral) -> Struct:
        name = self._string_builder(node.name)
        return Struct(name, {f.name: self.stored(f.value) for f in node.fields})

    def _bound(self, bound) -> int:
        if isinstance(bound, spec.IntLiteral):
            return bound.value
        return to_int(self.resolve(bound), f"range bound [{bound}]")

    def _range(self, node: spec.RangeLiteral) -> range:
        return make_range(self._bound(node.lo), self._bound(node.hi))

    # -- collaborators -----------------------------------------------------

    def _build(self, node: spec.Build) -> Artifact:
        if self.renderer is None:
            raise EvalError("build(...) is only available in template blocks")
        template = stringify(self.evaluate(node.template), "build template")
        output = stringify(self.evaluate(node.output), "build output")
        properties = {f.name: clone(self.evaluate(f.value)) for f in node.fields}
        return self.renderer.build(template, output, properties, self.env.snapshot())

    def _load(self, node: spec.Load) -> Value:
        path = stringify(self.evaluate(node.path), "load path")
        return load_data(path, self.base_dir)
