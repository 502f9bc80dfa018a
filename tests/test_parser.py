"""Tests for the configuration parser."""

import pytest

from qwbed.ast import load_config_text, parse_text
from qwbed.ast import spec
from qwbed.exceptions import BedSyntaxError


def first_value(text: str):
    """Parse `text` as the right-hand side of a globals assignment."""
    config = parse_text(f"[globals]\n_ = {text};\n")
    return config.globals[0].value


# =============================================================================
# Sections
# =============================================================================


def test_parse_all_sections():
    config = parse_text(
        """
        [includes]
        "templates" "common.bed"
        [output]
        "out"
        [globals]
        name = "world";
        [template.configs]
        yield build("a.j2", "a.cfg");
        [commands]
        spawn "echo" [name];
        [commands.smoke]
        sleep 10;
        """
    )

    assert config.includes == ["templates", "common.bed"]
    assert config.output == "out"
    assert len(config.globals) == 1
    assert [t.name for t in config.templates] == ["configs"]
    assert [c.name for c in config.commands] == [None, "smoke"]
    assert [c.label for c in config.commands] == ["commands", "commands.smoke"]


def test_get_commands_selects_unnamed_block():
    config = parse_text("[commands]\nsleep 1;\n[commands.other]\nsleep 2;\n")

    assert config.get_commands("commands").name is None
    assert config.get_commands("other").name == "other"
    assert config.get_commands("missing") is None


def test_comments_and_whitespace_are_ignored():
    config = parse_text(
        """
        // leading comment
        [globals]
        a = "x"; // trailing comment
        b   =
            "y";
        """
    )

    assert [s.name for s in config.globals] == ["a", "b"]


def test_string_escapes():
    value = first_value(r'"say \"hi\"\n"')

    assert value.parts[0].value == 'say "hi"\n'


def test_statement_positions_are_recorded():
    config = parse_text("[globals]\n\n  a = \"x\";\n")

    assert config.globals[0].line == 3
    assert config.globals[0].column == 3


# =============================================================================
# Expressions
# =============================================================================


def test_single_bracketed_access_is_interpolation():
    value = first_value("[a.b]")

    assert isinstance(value, spec.StringBuilder)
    assert isinstance(value.parts[0], spec.Interpolation)
    assert str(value.parts[0].access) == "a.b"


def test_trailing_comma_makes_a_list():
    value = first_value("[a,]")

    assert isinstance(value, spec.ListLiteral)
    assert isinstance(value.items[0], spec.Access)


def test_list_literals():
    assert first_value("[]") == spec.ListLiteral([])

    value = first_value('["a", [b], c]')
    assert isinstance(value, spec.ListLiteral)
    assert len(value.items) == 3
    assert isinstance(value.items[1], spec.StringBuilder)
    assert isinstance(value.items[2], spec.Access)


def test_string_builder_concatenation():
    value = first_value('"a" + [x] + "b"')

    assert isinstance(value, spec.StringBuilder)
    assert [type(p) for p in value.parts] == [spec.Text, spec.Interpolation, spec.Text]


def test_access_chain_with_dynamic_index():
    value = first_value("a.b[0].c[i]")

    assert isinstance(value, spec.Access)
    assert value.name == "a"
    steps = value.steps
    assert steps[0] == spec.FieldStep("b")
    assert steps[1] == spec.IndexStep(0)
    assert steps[2] == spec.FieldStep("c")
    assert steps[3] == spec.IndexStep(spec.Access("i"))


def test_range_bounds():
    literal = first_value("-3..5")
    assert literal == spec.RangeLiteral(spec.IntLiteral(-3), spec.IntLiteral(5))

    dynamic = first_value("[lo]..[hi]")
    assert dynamic == spec.RangeLiteral(spec.Access("lo"), spec.Access("hi"))


def test_object_literal_with_nested_fields():
    value = first_value('"server" { port = "80", tags = ["a", "b"], inner = "x" { y = 1 }, }')

    assert isinstance(value, spec.ObjectLiteral)
    assert [f.name for f in value.fields] == ["port", "tags", "inner"]
    assert isinstance(value.fields[2].value, spec.ObjectLiteral)


def test_clone_and_integer():
    assert first_value("*a.b") == spec.Clone(spec.Access("a", [spec.FieldStep("b")]))
    assert first_value("42") == spec.IntLiteral(42)


def test_build_with_properties_both_forms():
    config = parse_text(
        '[template.t]\nyield build("a.j2", "out/" + [n], port = p) { name = "x" };\n'
    )
    build = config.templates[0].body[0].value

    assert isinstance(build, spec.Build)
    assert [f.name for f in build.fields] == ["port", "name"]


# =============================================================================
# Statements
# =============================================================================


def test_loop_shapes():
    config = parse_text(
        """
        [globals]
        for x in xs { }
        for (a, b) in (xs, 0..3) { }
        for group (a, b) in ([xs], ys) { }
        """
    )
    single, combo, group = config.globals

    assert single.kind == spec.LoopKind.SINGLE
    assert combo.kind == spec.LoopKind.COMBINATION
    assert combo.targets == ["a", "b"]
    assert isinstance(combo.iterables[1], spec.RangeLiteral)
    assert group.kind == spec.LoopKind.GROUP
    # [xs] in loop position names the variable itself
    assert group.iterables[0] == spec.Access("xs")


def test_group_is_not_reserved():
    config = parse_text("[globals]\nfor group in groups { }\ngroup = \"g\";\n")
    loop, assign = config.globals

    assert loop.kind == spec.LoopKind.SINGLE
    assert loop.targets == ["group"]
    assert assign.name == "group"


def test_unknown_loop_modifier():
    with pytest.raises(BedSyntaxError, match="modifier"):
        parse_text("[globals]\nfor zip (a, b) in (xs, ys) { }\n")


def test_if_with_several_conditions():
    config = parse_text("[globals]\nif a, b.c d { x = \"1\"; }\n")
    stmt = config.globals[0]

    assert [str(c) for c in stmt.conditions] == ["a", "b.c", "d"]
    assert len(stmt.body) == 1


def test_push_reassign_and_print():
    config = parse_text('[globals]\nl = [];\nl.push("a");\nl := [];\nprint(l);\n')

    assert [type(s) for s in config.globals] == [
        spec.Assign,
        spec.Push,
        spec.Reassign,
        spec.Print,
    ]


def test_spawn_with_all_options():
    config = parse_text(
        """
        [commands]
        spawn 3 dir("work") stdout(append("logs/" + [n] + ".log")) stderr(print)
            "./server" "--port" [port] {extra};
        """
    )
    spawn = config.commands[0].body[0]

    assert spawn.id == 3
    assert spawn.cwd.parts[0].value == "work"
    assert spawn.stdout.mode == spec.RedirectMode.APPEND
    assert spawn.stderr.mode == spec.RedirectMode.PRINT
    assert spawn.program.parts[0].value == "./server"
    assert [type(a) for a in spawn.args] == [spec.ArgText, spec.ArgText, spec.ArgExpand]


def test_spawn_bare_redirect_truncates():
    config = parse_text('[commands]\nspawn stdout("out.log") "true";\n')

    assert config.commands[0].body[0].stdout.mode == spec.RedirectMode.CREATE


def test_process_statements():
    config = parse_text(
        "[commands]\nlimit 4;\nsleep 100;\nwait_all;\nwait_all 50;\n"
        "wait_for 1;\nwait_for 2 1000 10;\nkill 3;\n"
    )
    body = config.commands[0].body

    assert body[0] == spec.Limit(4)
    assert body[1] == spec.Sleep(100)
    assert body[2] == spec.WaitAll(None)
    assert body[3] == spec.WaitAll(50)
    assert body[4] == spec.WaitFor(1)
    assert body[5] == spec.WaitFor(2, 1000, 10)
    assert body[6] == spec.Kill(3)


# =============================================================================
# Errors
# =============================================================================


def test_missing_semicolon_reports_position():
    with pytest.raises(BedSyntaxError) as info:
        parse_text('[globals]\na = "x"\nb = "y";\n', source="bed.conf")

    err = info.value
    assert err.line == 3
    assert err.source == "bed.conf"
    assert "';'" in err.expected
    assert "bed.conf:3" in str(err)


@pytest.mark.parametrize(
    "text, keyword",
    [
        ('[globals]\nyield "x";\n', "yield"),
        ("[template.t]\nsleep 1;\n", "sleep"),
        ('[globals]\nspawn "x";\n', "spawn"),
        ('[commands]\na = build("t", "o");\n', "build"),
        ('[commands]\nfor x in xs { yield "x"; }\n', "yield"),
    ],
)
def test_statements_outside_their_section(text, keyword):
    with pytest.raises(BedSyntaxError, match=keyword):
        parse_text(text)


def test_duplicate_template_names():
    with pytest.raises(BedSyntaxError, match="Duplicate template"):
        parse_text("[template.a]\n[template.a]\n")


def test_duplicate_commands_blocks():
    with pytest.raises(BedSyntaxError, match="Duplicate commands"):
        parse_text("[commands.a]\n[commands.a]\n")


def test_list_cannot_be_concatenated():
    with pytest.raises(BedSyntaxError, match="concatenated"):
        first_value('"a" + ["b", "c"]')


def test_loop_arity_mismatch():
    with pytest.raises(BedSyntaxError, match="2 variable"):
        parse_text("[globals]\nfor (a, b) in (xs) { }\n")


def test_negative_limit_rejected():
    with pytest.raises(BedSyntaxError, match="negative"):
        parse_text("[commands]\nlimit -1;\n")


def test_configuration_needs_commands():
    with pytest.raises(BedSyntaxError, match="commands"):
        load_config_text('[globals]\na = "x";\n')


def test_sections_must_be_in_order():
    with pytest.raises(BedSyntaxError):
        parse_text("[commands]\n[globals]\n")
