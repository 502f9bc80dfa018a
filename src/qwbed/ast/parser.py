"""Parser for test bed configuration files.

The grammar lives in `grammar.lark` next to this module and is parsed with an
LALR parser. `BedTransformer` turns the lark tree into the dataclasses from
`qwbed.ast.spec`, and `validate_sections` rejects statements that appear in a
section where they cannot run.
"""

from __future__ import annotations

import logging
import re
from importlib.resources import files
from pathlib import Path
from typing import Iterator, Optional

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, VisitError
from lark.lexer import PatternStr

from qwbed.exceptions import BedError, BedSyntaxError

from . import spec

log = logging.getLogger(__name__)

GRAMMAR = (files(__package__) / "grammar.lark").read_text(encoding="utf-8")

_parser = Lark(
    GRAMMAR,
    start="unit",
    parser="lalr",
    lexer="contextual",
    propagate_positions=True,
    maybe_placeholders=False,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\"}
_ESCAPE_RE = re.compile(r"\\(.)")


def unescape(literal: str) -> str:
    """Strip the quotes of a STRING token and resolve backslash escapes."""
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(0)), literal[1:-1])


def _pos(meta) -> dict:
    return {"line": getattr(meta, "line", 0), "column": getattr(meta, "column", 0)}


@v_args(meta=True)
class BedTransformer(Transformer):
    """Converts the lark parse tree into `qwbed.ast.spec` nodes."""

    def __init__(self, source: Optional[str] = None):
        super().__init__()
        self.source = source

    def _error(self, message: str, meta) -> BedSyntaxError:
        return BedSyntaxError(message, self.source, **_pos(meta))

    def _text(self, node, meta, what: str) -> spec.StringBuilder:
        if not isinstance(node, spec.StringBuilder):
            raise self._error(f"{what} must be a string, not a list literal", meta)
        return node

    def _count(self, token: Token, meta, what: str) -> int:
        value = int(token)
        if value < 0:
            raise self._error(f"{what} must not be negative: {value}", meta)
        return value

    # -- sections ----------------------------------------------------------

    def unit(self, meta, children):
        config = spec.Config()
        for kind, payload in children:
            if kind == "includes":
                config.includes.extend(payload)
            elif kind == "output":
                config.output = payload
            elif kind == "globals":
                config.globals.extend(payload)
            elif kind == "template":
                config.templates.append(payload)
            else:
                config.commands.append(payload)
        return config

    def includes_section(self, meta, children):
        return "includes", [unescape(tok) for tok in children[1:]]

    def output_section(self, meta, children):
        return "output", unescape(children[1])

    def globals_section(self, meta, children):
        return "globals", children[1:]

    def template_section(self, meta, children):
        header = str(children[0])
        name = header[len("[template.") : -1]
        return "template", spec.Template(name, list(children[1:]), **_pos(meta))

    def commands_section(self, meta, children):
        header = str(children[0])
        name = header[len("[commands.") : -1] if "." in header else None
        return "commands", spec.CommandBlock(name, list(children[1:]), **_pos(meta))

    # -- statements --------------------------------------------------------

    def block(self, meta, children):
        return list(children)

    def assign(self, meta, children):
        return spec.Assign(str(children[0]), children[1], **_pos(meta))

    def reassign(self, meta, children):
        return spec.Reassign(str(children[0]), children[1], **_pos(meta))

    def push(self, meta, children):
        return spec.Push(str(children[0]), children[1], **_pos(meta))

    def print_stmt(self, meta, children):
        return spec.Print(children[0], **_pos(meta))

    def if_stmt(self, meta, children):
        *conditions, body = children
        return spec.If(conditions, body, **_pos(meta))

    def for_single(self, meta, children):
        name, iterable, body = children
        return spec.ForLoop(
            spec.LoopKind.SINGLE, [str(name)], [self._iterable(iterable)], body, **_pos(meta)
        )

    def for_combination(self, meta, children):
        return self._tuple_loop(spec.LoopKind.COMBINATION, meta, children)

    def for_group(self, meta, children):
        # `group` is a loop modifier only here; elsewhere it is an ordinary name
        modifier, *rest = children
        if str(modifier) != "group":
            raise self._error(f"Unknown loop modifier '{modifier}' (expected 'group')", meta)
        return self._tuple_loop(spec.LoopKind.GROUP, meta, rest)

    def _tuple_loop(self, kind: spec.LoopKind, meta, children):
        names, iterables, body = children
        if len(names) != len(iterables):
            raise self._error(
                f"Loop binds {len(names)} variable(s) to {len(iterables)} iterable(s)",
                meta,
            )
        if len(set(names)) != len(names):
            raise self._error(f"Duplicate loop variable in ({', '.join(names)})", meta)
        return spec.ForLoop(kind, names, iterables, body, **_pos(meta))

    def names(self, meta, children):
        return [str(tok) for tok in children]

    def iterables(self, meta, children):
        return [self._iterable(child) for child in children]

    def _iterable(self, node):
        # `[x]` in loop position means the variable itself
        if isinstance(node, spec.Interpolation):
            return node.access
        return node

    def yield_stmt(self, meta, children):
        return spec.Yield(children[0], **_pos(meta))

    def limit_stmt(self, meta, children):
        return spec.Limit(self._count(children[0], meta, "limit"), **_pos(meta))

    def sleep_stmt(self, meta, children):
        return spec.Sleep(self._count(children[0], meta, "sleep"), **_pos(meta))

    def wait_all_stmt(self, meta, children):
        timeout = self._count(children[0], meta, "wait_all timeout") if children else None
        return spec.WaitAll(timeout, **_pos(meta))

    def wait_for_stmt(self, meta, children):
        pid = self._count(children[0], meta, "process id")
        timeout = retries = None
        if len(children) == 3:
            timeout = self._count(children[1], meta, "wait_for timeout")
            retries = self._count(children[2], meta, "wait_for retries")
            if retries == 0:
                raise self._error("wait_for retries must be at least 1", meta)
        return spec.WaitFor(pid, timeout, retries, **_pos(meta))

    def kill_stmt(self, meta, children):
        return spec.Kill(self._count(children[0], meta, "process id"), **_pos(meta))

    def spawn_stmt(self, meta, children):
        node = spec.Spawn(program=None, **_pos(meta))
        for child in children:
            if isinstance(child, Token):
                node.id = self._count(child, meta, "process id")
            elif isinstance(child, tuple):
                option, value = child
                if getattr(node, option) is not None:
                    raise self._error(f"Duplicate spawn option: {option}", meta)
                setattr(node, option, value)
            elif isinstance(child, (spec.ArgText, spec.ArgExpand)):
                node.args.append(child)
            else:
                node.program = self._text(child, meta, "Program")
        return node

    def spawn_dir(self, meta, children):
        return "cwd", self._text(children[0], meta, "Working directory")

    def spawn_stdout(self, meta, children):
        return "stdout", children[0]

    def spawn_stderr(self, meta, children):
        return "stderr", children[0]

    def redirect_print(self, meta, children):
        return spec.Redirect(spec.RedirectMode.PRINT, **_pos(meta))

    def redirect_append(self, meta, children):
        path = self._text(children[0], meta, "Redirect path")
        return spec.Redirect(spec.RedirectMode.APPEND, path, **_pos(meta))

    def redirect_create(self, meta, children):
        path = self._text(children[0], meta, "Redirect path")
        return spec.Redirect(spec.RedirectMode.CREATE, path, **_pos(meta))

    def arg_text(self, meta, children):
        return spec.ArgText(self._text(children[0], meta, "Argument"), **_pos(meta))

    def arg_expand(self, meta, children):
        return spec.ArgExpand(children[0], **_pos(meta))

    # -- expressions -------------------------------------------------------

    def string_builder(self, meta, children):
        parts = []
        for child in children:
            if isinstance(child, Token):
                parts.append(spec.Text(unescape(child), **_pos(meta)))
            else:
                parts.append(child)
        lists = [p for p in parts if isinstance(p, spec.ListLiteral)]
        if lists:
            if len(parts) > 1:
                raise self._error("A list literal cannot be concatenated with +", meta)
            return lists[0]
        return spec.StringBuilder(parts, **_pos(meta))

    def object(self, meta, children):
        name = self._text(children[0], meta, "Object name")
        fields = children[1] if len(children) > 1 else []
        return spec.ObjectLiteral(name, fields, **_pos(meta))

    def fields(self, meta, children):
        names = [f.name for f in children]
        for name in names:
            if names.count(name) > 1:
                raise self._error(f"Duplicate field: {name}", meta)
        return list(children)

    def field(self, meta, children):
        return spec.FieldInit(str(children[0]), children[1], **_pos(meta))

    def range(self, meta, children):
        lo, hi = (self._bound(child, meta) for child in children)
        return spec.RangeLiteral(lo, hi, **_pos(meta))

    def _bound(self, node, meta):
        if isinstance(node, Token):
            return spec.IntLiteral(int(node), **_pos(meta))
        if isinstance(node, spec.Interpolation):
            return node.access
        raise self._error("Range bounds must be integers or bracketed variables", meta)

    def clone(self, meta, children):
        return spec.Clone(children[0], **_pos(meta))

    def build(self, meta, children):
        template, output, *rest = children
        fields: list[spec.FieldInit] = []
        for item in rest:
            fields.extend(item if isinstance(item, list) else [item])
        names = [f.name for f in fields]
        if len(set(names)) != len(names):
            raise self._error("Duplicate build property", meta)
        return spec.Build(template, output, fields, **_pos(meta))

    def load(self, meta, children):
        return spec.Load(children[0], **_pos(meta))

    def access(self, meta, children):
        name, *steps = children
        return spec.Access(str(name), steps, **_pos(meta))

    def field_step(self, meta, children):
        return spec.FieldStep(str(children[0]), **_pos(meta))

    def index_step(self, meta, children):
        index = children[0]
        if isinstance(index, Token):
            index = int(index)
        return spec.IndexStep(index, **_pos(meta))

    def int_literal(self, meta, children):
        return spec.IntLiteral(int(children[0]), **_pos(meta))

    def empty_list(self, meta, children):
        return spec.ListLiteral([], **_pos(meta))

    def bracket_one(self, meta, children):
        (inner,) = children
        if isinstance(inner, spec.Access):
            return spec.Interpolation(inner, **_pos(meta))
        return spec.ListLiteral([inner], **_pos(meta))

    def list_one(self, meta, children):
        return spec.ListLiteral(list(children), **_pos(meta))

    def list_many(self, meta, children):
        return spec.ListLiteral(list(children), **_pos(meta))


# =============================================================================
# Section validation
# =============================================================================


def _walk(statements: list) -> Iterator:
    for stmt in statements:
        yield stmt
        if isinstance(stmt, (spec.If, spec.ForLoop)):
            yield from _walk(stmt.body)


def _expressions(stmt) -> Iterator:
    if isinstance(stmt, (spec.Assign, spec.Reassign, spec.Push, spec.Print, spec.Yield)):
        yield stmt.value
    elif isinstance(stmt, spec.ForLoop):
        yield from stmt.iterables


def _contains_build(expr) -> bool:
    if isinstance(expr, spec.Build):
        return True
    if isinstance(expr, spec.ListLiteral):
        return any(_contains_build(item) for item in expr.items)
    if isinstance(expr, spec.ObjectLiteral):
        return any(_contains_build(f.value) for f in expr.fields)
    if isinstance(expr, spec.Load):
        return _contains_build(expr.path)
    return False


def _check_section(statements: list, kind: spec.SectionKind, label: str, source) -> None:
    for stmt in _walk(statements):
        misplaced = None
        if isinstance(stmt, spec.Yield) and kind != spec.SectionKind.TEMPLATE:
            misplaced = "yield"
        elif isinstance(stmt, spec.PROCESS_STATEMENTS) and kind != spec.SectionKind.COMMANDS:
            misplaced = type(stmt).__name__.lower()
        elif kind != spec.SectionKind.TEMPLATE and any(
            _contains_build(expr) for expr in _expressions(stmt)
        ):
            misplaced = "build"
        if misplaced:
            raise BedSyntaxError(
                f"'{misplaced}' is not allowed in [{label}]",
                source,
                stmt.line,
                stmt.column,
            )


def validate_sections(config: spec.Config) -> spec.Config:
    """Check that statements only appear in sections that can run them."""
    source = str(config.source) if config.source else None

    _check_section(config.globals, spec.SectionKind.GLOBALS, "globals", source)

    seen: set[str] = set()
    for template in config.templates:
        if template.name in seen:
            raise BedSyntaxError(
                f"Duplicate template: {template.name}", source, template.line, template.column
            )
        seen.add(template.name)
        _check_section(
            template.body, spec.SectionKind.TEMPLATE, f"template.{template.name}", source
        )

    labels: set[str] = set()
    for block in config.commands:
        if block.label in labels:
            raise BedSyntaxError(
                f"Duplicate commands block: [{block.label}]", source, block.line, block.column
            )
        labels.add(block.label)
        _check_section(block.body, spec.SectionKind.COMMANDS, block.label, source)

    return config


# =============================================================================
# Entry points
# =============================================================================


def _describe(name: str) -> str:
    try:
        pattern = _parser.get_terminal(name).pattern
    except KeyError:
        return name
    if isinstance(pattern, PatternStr):
        return repr(pattern.value)
    return name


def _syntax_error(exc: UnexpectedInput, text: str, source: Optional[str]) -> BedSyntaxError:
    if isinstance(exc, UnexpectedCharacters):
        message = f"Unexpected character {exc.char!r}"
        expected = exc.allowed or set()
    elif isinstance(exc, UnexpectedEOF):
        message = "Unexpected end of input"
        expected = exc.expected
    else:
        message = f"Unexpected token {str(exc.token)!r}"
        expected = getattr(exc, "expected", None) or set()

    line = exc.line if exc.line and exc.line > 0 else None
    context = exc.get_context(text) if line else None
    return BedSyntaxError(
        message,
        source,
        line,
        exc.column if line else None,
        [_describe(name) for name in expected],
        context.rstrip() if context else None,
    )


def parse_text(text: str, source: str | Path | None = None) -> spec.Config:
    """Parse configuration text into a `Config`.

    Args:
        text: The configuration source.
        source: Path of the file the text came from, used in error messages
            and to resolve relative paths.

    Returns:
        The parsed and section-validated `Config`. Includes are not resolved.

    Raises:
        BedSyntaxError: If the text is malformed.
    """
    name = str(source) if source is not None else None
    try:
        tree = _parser.parse(text)
    except UnexpectedInput as exc:
        raise _syntax_error(exc, text, name) from None

    try:
        config = BedTransformer(name).transform(tree)
    except VisitError as exc:
        if isinstance(exc.orig_exc, BedError):
            raise exc.orig_exc from None
        raise

    config.source = Path(source).resolve() if source is not None else None
    log.debug(
        f"Parsed {name or '<string>'}: {len(config.templates)} template(s), "
        f"{len(config.commands)} commands block(s)"
    )
    return validate_sections(config)


def parse_file(path: str | Path) -> spec.Config:
    """Read and parse a configuration file."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise BedSyntaxError(f"Cannot read configuration: {exc}", str(p)) from exc
    return parse_text(text, p)
