"""Tests for expression evaluation, values and the data loader."""

import pytest

from qwbed.ast import parse_text
from qwbed.exceptions import (
    FieldNotFound,
    IndexOutOfRange,
    LoadError,
    TypeMismatch,
    UndefinedVariable,
)
from qwbed.runtime import Artifact, Environment, Evaluator, Struct
from qwbed.runtime.values import format_value, is_true, make_range, stringify


def expression(text: str):
    return parse_text(f"[globals]\n_ = {text};\n").globals[0].value


def condition(text: str):
    return parse_text(f"[globals]\nif {text} {{ }}\n").globals[0].conditions[0]


@pytest.fixture
def env():
    env = Environment()
    env.declare("x", "1")
    env.declare("n", 3)
    env.declare("i", "1")
    env.declare(
        "server",
        Struct("web", {"port": "80", "tags": ["a", "b", "c"], "inner": Struct("db", {"k": "v"})}),
    )
    env.declare("items", [Struct("first", {"v": "1"}), Struct("second", {"v": "2"})])
    env.declare("art", Artifact("t.j2", "/out/a.cfg", {"port": "81"}))
    return env


@pytest.fixture
def ev(env, tmp_path):
    return Evaluator(env, tmp_path)


# =============================================================================
# String builder
# =============================================================================


def test_string_builder_round_trip(ev):
    assert ev.evaluate(expression('"a" + [x] + "b"')) == "a1b"


def test_integers_and_structs_stringify(ev):
    assert ev.evaluate(expression('"n=" + [n]')) == "n=3"
    assert ev.evaluate(expression('"s=" + [server] + "/" + [server.inner]')) == "s=web/db"
    assert ev.evaluate(expression('"p=" + [art]')) == "p=/out/a.cfg"


def test_list_interpolation_is_type_mismatch(ev):
    with pytest.raises(TypeMismatch):
        ev.evaluate(expression('"tags: " + [server.tags]'))


# =============================================================================
# Access
# =============================================================================


def test_access_returns_the_stored_object(ev, env):
    tags = ev.evaluate(expression("server.tags"))

    assert tags is env.lookup("server").fields["tags"]


def test_clone_is_independent(ev, env):
    copy = ev.evaluate(expression("*server.tags"))
    copy.append("d")

    assert env.lookup("server").fields["tags"] == ["a", "b", "c"]


def test_access_chain_with_index(ev):
    assert ev.evaluate(expression("items[1].v")) == "2"
    assert ev.evaluate(expression("server.tags[2]")) == "c"


def test_dynamic_index_from_string_variable(ev):
    assert ev.evaluate(expression("server.tags[i]")) == "b"


def test_artifact_fields(ev):
    assert ev.evaluate(expression("art.output_path")) == "/out/a.cfg"
    assert ev.evaluate(expression("art.source_path")) == "t.j2"
    assert ev.evaluate(expression("art.port")) == "81"


@pytest.mark.parametrize(
    "text, error",
    [
        ("missing", UndefinedVariable),
        ("server.tags[3]", IndexOutOfRange),
        ("server.nope", FieldNotFound),
        ("x.field", TypeMismatch),
        ("x[0]", TypeMismatch),
        ("server.tags[x.y]", TypeMismatch),
    ],
)
def test_access_errors(ev, text, error):
    with pytest.raises(error):
        ev.evaluate(expression(text))


# =============================================================================
# Literals
# =============================================================================


def test_object_literal(ev):
    value = ev.evaluate(expression('"node" + [x] { port = "80", count = 2, peers = ["a",] }'))

    assert value == Struct("node1", {"port": "80", "count": 2, "peers": ["a"]})


def test_list_literal_mixes_kinds(ev):
    assert ev.evaluate(expression('["a", [x], 7]')) == ["a", "1", 7]


def test_ranges_are_half_open(ev):
    assert list(ev.evaluate(expression("0..3"))) == [0, 1, 2]
    assert list(ev.evaluate(expression("-3..0"))) == [-3, -2, -1]
    assert list(ev.evaluate(expression("[i]..[n]"))) == [1, 2]


def test_descending_range(ev):
    assert list(ev.evaluate(expression("3..0"))) == [3, 2, 1]
    assert make_range(2, 2) == range(2, 2)


def test_range_bound_must_be_integer(ev):
    with pytest.raises(TypeMismatch):
        ev.evaluate(expression("0..[server]"))


# =============================================================================
# Truthiness
# =============================================================================


@pytest.mark.parametrize(
    "value, expected",
    [("false", False), ("anything", True), ("0", True), ("", True), (False, False), (True, True)],
)
def test_is_true(value, expected):
    assert is_true(value) is expected


def test_undefined_condition_is_false(ev):
    assert ev.truthy(condition("missing")) is False
    assert ev.truthy(condition("server.missing")) is False
    assert ev.truthy(condition("server")) is True


def test_false_string_condition(ev, env):
    env.declare("flag", "false")

    assert ev.truthy(condition("flag")) is False


# =============================================================================
# Values
# =============================================================================


def test_stringify_rejects_lists():
    with pytest.raises(TypeMismatch):
        stringify(["a"])
    assert stringify(True) == "true"


def test_format_value_uses_literal_syntax():
    value = Struct("web", {"port": "80", "ids": [1, 2], "r": range(0, 3)})

    assert format_value(value) == '"web" { port = "80", ids = [1, 2], r = 0..3 }'


def test_struct_fields_are_attributes_for_templates():
    value = Struct("web", {"port": "80"})

    assert value.port == "80"
    assert value["port"] == "80"
    assert str(value) == "web"
    with pytest.raises(AttributeError):
        value.missing


# =============================================================================
# load(...)
# =============================================================================


def test_load_json(ev, tmp_path):
    (tmp_path / "hosts.json").write_text('{"hosts": [{"name": "a", "port": 1}], "ratio": 0.5}')

    value = ev.evaluate(expression('load("hosts.json")'))

    assert value.name == "hosts"
    assert value.fields["hosts"][0] == Struct("a", {"name": "a", "port": 1})
    assert value.fields["ratio"] == "0.5"


def test_load_yaml_and_toml(ev, tmp_path):
    (tmp_path / "cfg.yaml").write_text("server:\n  port: 80\n  debug: null\n")
    (tmp_path / "cfg.toml").write_text('[server]\nport = 81\nenabled = true\n')

    yaml_value = ev.evaluate(expression('load("cfg.yaml")'))
    toml_value = ev.evaluate(expression('load("cfg.toml")'))

    assert yaml_value.fields["server"] == Struct("server", {"port": 80, "debug": ""})
    assert toml_value.fields["server"].fields == {"port": 81, "enabled": True}


def test_load_errors(ev, tmp_path):
    (tmp_path / "bad.json").write_text("{not json")

    with pytest.raises(LoadError):
        ev.evaluate(expression('load("bad.json")'))
    with pytest.raises(LoadError, match="unsupported"):
        ev.evaluate(expression('load("data.csv")'))
    with pytest.raises(LoadError):
        ev.evaluate(expression('load("missing.json")'))
