"""Lexically scoped variable environment.

The environment is a stack of scopes. The root scope lives for the whole run
and is shared by globals, templates and commands; loop and `if` bodies push
child scopes that are dropped when the body ends.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from qwbed.exceptions import ReadOnlyError, RedeclarationError, TypeMismatch, UndefinedVariable

from .values import Value

log = logging.getLogger(__name__)


@dataclass
class Binding:
    """A bound value.

    `owned` is False for aliases into another binding's storage (access
    chains and loop variables); those cannot be mutated in place.
    """

    value: Value
    owned: bool = True
    readonly: bool = False


class Environment:
    def __init__(self) -> None:
        self._scopes: list[dict[str, Binding]] = [{}]

    @property
    def depth(self) -> int:
        return len(self._scopes)

    def declare(
        self, name: str, value: Value, *, owned: bool = True, readonly: bool = False
    ) -> None:
        """Bind `name` in the current scope.

        Raises:
            RedeclarationError: If `name` is already bound in this scope.
        """
        scope = self._scopes[-1]
        if name in scope:
            raise RedeclarationError(name)
        scope[name] = Binding(value, owned, readonly)

    def declare_global(self, name: str, value: Value, *, readonly: bool = False) -> None:
        """Bind `name` in the root scope."""
        root = self._scopes[0]
        if name in root:
            raise RedeclarationError(name)
        root[name] = Binding(value, True, readonly)

    def reassign(self, name: str, value: Value, *, owned: bool = True) -> None:
        """Rebind the nearest existing binding of `name`.

        Raises:
            UndefinedVariable: If `name` is not bound in any scope.
            ReadOnlyError: If the binding is read-only.
        """
        binding = self.lookup_binding(name)
        if binding is None:
            raise UndefinedVariable(name)
        if binding.readonly:
            raise ReadOnlyError(name)
        binding.value = value
        binding.owned = owned

    def push(self, name: str, value: Value) -> None:
        """Append to the list bound to `name`, in place."""
        binding = self.lookup_binding(name)
        if binding is None:
            raise UndefinedVariable(name)
        if binding.readonly:
            raise ReadOnlyError(name)
        if not isinstance(binding.value, list):
            raise TypeMismatch("a list", binding.value, f"{name}.push")
        if not binding.owned:
            raise TypeMismatch(
                "an owned list", binding.value, f"{name}.push (alias; use * to clone)"
            )
        binding.value.append(value)

    def lookup_binding(self, name: str) -> Optional[Binding]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return None

    def lookup(self, name: str) -> Value:
        binding = self.lookup_binding(name)
        if binding is None:
            raise UndefinedVariable(name)
        return binding.value

    def __contains__(self, name: str) -> bool:
        return self.lookup_binding(name) is not None

    @contextmanager
    def child_scope(self) -> Iterator["Environment"]:
        """Push a fresh scope for the duration of the `with` block."""
        self._scopes.append({})
        try:
            yield self
        finally:
            self._scopes.pop()

    def snapshot(self) -> dict[str, Any]:
        """All visible bindings, innermost shadowing outer ones."""
        visible: dict[str, Any] = {}
        for scope in self._scopes:
            for name, binding in scope.items():
                visible[name] = binding.value
        return visible
