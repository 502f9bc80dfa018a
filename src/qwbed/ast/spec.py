"""AST node types for the test bed language.

Expressions and statements are plain dataclasses. The evaluator and executor
dispatch on the concrete node type, so every node kind is listed in the
`Expr` and `Statement` unions below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union


@dataclass
class Node:
    """Base node carrying the source position of the construct."""

    line: int = field(default=0, kw_only=True, compare=False)
    column: int = field(default=0, kw_only=True, compare=False)


# =============================================================================
# Expressions
# =============================================================================


@dataclass
class FieldStep(Node):
    name: str


@dataclass
class IndexStep(Node):
    index: Union[int, "Access"]


@dataclass
class Access(Node):
    """Variable access chain such as `a.b[0].c` or `a[i]`."""

    name: str
    steps: list[Union[FieldStep, IndexStep]] = field(default_factory=list)

    def __str__(self) -> str:
        text = self.name
        for step in self.steps:
            if isinstance(step, FieldStep):
                text += f".{step.name}"
            else:
                text += f"[{step.index}]"
        return text


@dataclass
class Text(Node):
    value: str


@dataclass
class Interpolation(Node):
    """A bracketed reference `[a.b]` inside a string builder."""

    access: Access


@dataclass
class StringBuilder(Node):
    """Concatenation of literal text and interpolations joined with `+`."""

    parts: list[Union[Text, Interpolation]]


@dataclass
class IntLiteral(Node):
    value: int


@dataclass
class ListLiteral(Node):
    items: list["Expr"] = field(default_factory=list)


@dataclass
class FieldInit(Node):
    name: str
    value: "Expr"


@dataclass
class ObjectLiteral(Node):
    """Named struct literal: `"server" { port = "80" }`."""

    name: StringBuilder
    fields: list[FieldInit] = field(default_factory=list)


@dataclass
class RangeLiteral(Node):
    """Half-open integer range `lo..hi`."""

    lo: Union[IntLiteral, Access]
    hi: Union[IntLiteral, Access]


@dataclass
class Clone(Node):
    access: Access


@dataclass
class Build(Node):
    """`build(template, output, field = expr, ...)`, rendered by the template driver."""

    template: "Expr"
    output: "Expr"
    fields: list[FieldInit] = field(default_factory=list)


@dataclass
class Load(Node):
    path: "Expr"


Expr = Union[
    StringBuilder,
    Interpolation,
    IntLiteral,
    ListLiteral,
    ObjectLiteral,
    RangeLiteral,
    Access,
    Clone,
    Build,
    Load,
]


# =============================================================================
# Statements
# =============================================================================


class LoopKind(str, Enum):
    SINGLE = "single"
    COMBINATION = "combination"
    GROUP = "group"


class RedirectMode(str, Enum):
    PRINT = "print"
    APPEND = "append"
    CREATE = "create"


@dataclass
class Redirect(Node):
    mode: RedirectMode
    path: Optional[StringBuilder] = None


@dataclass
class ArgText(Node):
    """One argument built from text and interpolations."""

    value: Expr


@dataclass
class ArgExpand(Node):
    """`{x}`: pass the value through, lists and ranges expand to many arguments."""

    access: Access


@dataclass
class Assign(Node):
    name: str
    value: Expr


@dataclass
class Reassign(Node):
    name: str
    value: Expr


@dataclass
class Push(Node):
    name: str
    value: Expr


@dataclass
class Print(Node):
    value: Expr


@dataclass
class If(Node):
    conditions: list[Access]
    body: list["Statement"] = field(default_factory=list)


@dataclass
class ForLoop(Node):
    kind: LoopKind
    targets: list[str]
    iterables: list[Expr]
    body: list["Statement"] = field(default_factory=list)


@dataclass
class Yield(Node):
    value: Expr


@dataclass
class Limit(Node):
    count: int


@dataclass
class Sleep(Node):
    ms: int


@dataclass
class WaitAll(Node):
    timeout_ms: Optional[int] = None


@dataclass
class WaitFor(Node):
    id: int
    timeout_ms: Optional[int] = None
    retries: Optional[int] = None


@dataclass
class Kill(Node):
    id: int


@dataclass
class Spawn(Node):
    program: StringBuilder
    args: list[Union[ArgText, ArgExpand]] = field(default_factory=list)
    id: Optional[int] = None
    cwd: Optional[StringBuilder] = None
    stdout: Optional[Redirect] = None
    stderr: Optional[Redirect] = None


Statement = Union[
    Assign,
    Reassign,
    Push,
    Print,
    If,
    ForLoop,
    Yield,
    Limit,
    Sleep,
    WaitAll,
    WaitFor,
    Kill,
    Spawn,
]

PROCESS_STATEMENTS = (Limit, Sleep, WaitAll, WaitFor, Kill, Spawn)


# =============================================================================
# Sections
# =============================================================================


class SectionKind(str, Enum):
    GLOBALS = "globals"
    TEMPLATE = "template"
    COMMANDS = "commands"


@dataclass
class Template(Node):
    name: str
    body: list[Statement] = field(default_factory=list)


@dataclass
class CommandBlock(Node):
    """A `[commands]` block; the unnamed block has `name=None`."""

    name: Optional[str]
    body: list[Statement] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"commands.{self.name}" if self.name else "commands"


@dataclass
class Config:
    """A parsed configuration unit, with includes merged once resolved."""

    source: Optional[Path] = None
    includes: list[str] = field(default_factory=list)
    output: Optional[str] = None
    globals: list[Statement] = field(default_factory=list)
    templates: list[Template] = field(default_factory=list)
    commands: list[CommandBlock] = field(default_factory=list)
    search_paths: list[Path] = field(default_factory=list)

    @property
    def base_dir(self) -> Path:
        if self.source is None:
            return Path.cwd()
        return self.source.parent

    def get_commands(self, name: Optional[str]) -> Optional[CommandBlock]:
        """Find a commands block by name; `"commands"` selects the unnamed block."""
        for block in self.commands:
            if block.name == name or (name == "commands" and block.name is None):
                return block
        return None
