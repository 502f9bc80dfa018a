"""Tests for template blocks, build/yield and include resolution."""

from pathlib import Path

import pytest

from qwbed.ast import load_config
from qwbed.exceptions import IncludeError, RenderError, ReadOnlyError
from qwbed.runtime import Artifact


# =============================================================================
# build / yield
# =============================================================================


def test_build_renders_into_output_dir(bed):
    bed.write("Hello {{ name }} on {{ server.port }}\n", "greeting.j2")

    runner = bed.run(
        """
        [output]
        "out"
        [globals]
        name = "world";
        server = "web" { port = "8080" };
        [template.greetings]
        yield build("greeting.j2", "greeting.txt");
        [commands]
        """
    )

    out = bed.root / "out" / "greeting.txt"
    assert out.read_text() == "Hello world on 8080\n"
    (artifact,) = runner.artifacts["greetings"]
    assert artifact.output_path == str(out)
    assert runner.report.artifacts["greetings"] == [str(out)]


def test_yield_in_loop_keeps_order(bed):
    bed.write("id={{ i }}\n", "node.j2")

    runner = bed.run(
        """
        [template.nodes]
        for i in 0..3 { yield build("node.j2", "node" + [i] + ".cfg"); }
        [commands]
        """
    )

    nodes = runner.env.lookup("nodes")
    assert [Path(a.output_path).name for a in nodes] == ["node0.cfg", "node1.cfg", "node2.cfg"]
    assert (bed.root / "node2.cfg").read_text() == "id=2\n"


def test_build_properties(bed):
    bed.write("x\n", "t.j2")

    runner = bed.run(
        """
        [globals]
        p = "9000";
        [template.t]
        yield build("t.j2", "a.cfg", port = p) { role = "server" };
        [commands]
        print(t[0].port);
        print(t[0].role);
        """
    )

    artifact = runner.env.lookup("t")[0]
    assert isinstance(artifact, Artifact)
    assert artifact.properties == {"port": "9000", "role": "server"}
    assert bed.printed == ['"9000"', '"server"']


def test_later_templates_see_earlier_artifacts(bed):
    bed.write("{{ name }}\n", "conf.j2")
    bed.write("{% for c in configs %}{{ c }}\n{% endfor %}", "index.j2")

    bed.run(
        """
        [template.configs]
        for name in ["a", "b"] { yield build("conf.j2", [name] + ".conf"); }
        [template.index]
        yield build("index.j2", "index.txt");
        [commands]
        """
    )

    lines = (bed.root / "index.txt").read_text().splitlines()
    assert [Path(line).name for line in lines] == ["a.conf", "b.conf"]


def test_yield_plain_values(bed):
    runner = bed.run(
        """
        [globals]
        base = ["a"];
        [template.values]
        yield "x";
        yield base;
        [commands]
        """
    )

    values = runner.env.lookup("values")
    assert values == ["x", ["a"]]
    assert values[1] is not runner.env.lookup("base")


def test_template_registry_is_read_only(bed):
    with pytest.raises(ReadOnlyError):
        bed.run(
            """
            [template.t]
            yield "x";
            [commands]
            t := [];
            """
        )


def test_missing_template(bed):
    with pytest.raises(RenderError, match="missing.j2"):
        bed.run('[template.t]\nyield build("missing.j2", "o");\n[commands]\n')


def test_undefined_template_variable(bed):
    bed.write("{{ nope }}\n", "t.j2")

    with pytest.raises(RenderError):
        bed.run('[template.t]\nyield build("t.j2", "o");\n[commands]\n')


def test_lenient_templates_render_empty(bed):
    bed.write("[{{ nope }}]\n", "t.j2")

    bed.run('[template.t]\nyield build("t.j2", "o");\n[commands]\n', strict_templates=False)

    assert (bed.root / "o").read_text() == "[]\n"


def test_template_helpers(bed, monkeypatch):
    monkeypatch.setenv("QWBED_TEST_VALUE", "from-env")
    bed.write("secret\n", "keys/k.txt")
    bed.write("{{ env('QWBED_TEST_VALUE') }} {{ include_file('keys/k.txt') }}", "t.j2")

    bed.run('[template.t]\nyield build("t.j2", "o");\n[commands]\n')

    assert (bed.root / "o").read_text() == "from-env secret\n"


def test_shell_helper(bed):
    bed.write("{{ shell('echo hi') }}|{{ random(4) | length }}\n", "ok.j2")
    bed.write("{{ shell('echo broken >&2; exit 3') }}\n", "bad.j2")

    bed.run('[template.t]\nyield build("ok.j2", "o");\n[commands]\n')
    assert (bed.root / "o").read_text() == "hi|4\n"

    with pytest.raises(RenderError, match="broken"):
        bed.run('[template.t]\nyield build("bad.j2", "o");\n[commands]\n')


# =============================================================================
# Includes
# =============================================================================


def test_include_directory_adds_search_path(bed):
    bed.write("included {{ name }}\n", "tpl/t.j2")

    bed.run(
        """
        [includes]
        "tpl"
        [globals]
        name = "x";
        [template.t]
        yield build("t.j2", "o.txt");
        [commands]
        """
    )

    assert (bed.root / "o.txt").read_text() == "included x\n"


def test_include_file_is_merged_first(bed):
    bed.write('[globals]\nshared = "from fragment";\n', "common/shared.bed")

    runner = bed.run(
        """
        [includes]
        "common/shared.bed"
        [globals]
        mine = [shared] + "!";
        [commands]
        """
    )

    assert runner.env.lookup("mine") == "from fragment!"


def test_fragment_output_is_relative_to_fragment(bed):
    bed.write('[output]\n"build"\n', "sub/frag.bed")
    path = bed.write('[includes]\n"sub/frag.bed"\n[commands]\n')

    config = load_config(path)

    assert Path(config.output) == bed.root / "sub" / "build"


def test_include_cycle(bed):
    bed.write('[includes]\n"b.bed"\n', "a.bed")
    bed.write('[includes]\n"a.bed"\n', "b.bed")
    path = bed.write('[includes]\n"a.bed"\n[commands]\n')

    with pytest.raises(IncludeError, match="cycle"):
        load_config(path)


def test_missing_include(bed):
    path = bed.write('[includes]\n"nowhere.bed"\n[commands]\n')

    with pytest.raises(IncludeError, match="nowhere.bed"):
        load_config(path)
