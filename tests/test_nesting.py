"""Deeply nested blocks through every stage: parse, emit, codec, run."""

import pytest

from stackathon import ParseError, compile_library, disassemble, parse
from stackathon.ast import TBlockLit
from stackathon.cli import main
from stackathon.emit import program_to_source

DEPTH = 5000


def _nested(depth: int) -> str:
    return "{ " * depth + "} " * depth


def _depth(instrs) -> int:
    n = 0
    while instrs and isinstance(instrs[0], TBlockLit):
        n += 1
        instrs = instrs[0].body
    return n


def test_parse_deep_blocks():
    program = parse(_nested(DEPTH))
    assert _depth(program.body) == DEPTH


def test_unclosed_deep_blocks():
    with pytest.raises(ParseError, match=r"unmatched '\{' at line 1 col 9999"):
        parse("{ " * DEPTH)


def test_emit_deep_blocks():
    text = program_to_source(parse(_nested(DEPTH)))
    assert text == " ".join(["{"] * DEPTH + ["}"] * DEPTH) + "\n"


def test_library_round_trip_deep_blocks():
    data = compile_library("@deep " + _nested(DEPTH))
    text = disassemble(data)
    assert text.startswith("@deep { { ")
    assert _depth(parse(text).decls[0].body) == DEPTH - 1


def test_run_deep_blocks(run_stk):
    source = "{ " * DEPTH + "1 " + "} $ " * DEPTH
    assert [v.value for v in run_stk(source).stack] == [1]


def test_cli_runs_deep_file(capsys, tmp_path):
    path = tmp_path / "deep.stk"
    path.write_text("{ " * DEPTH + '"ok" print ' + "} $ " * DEPTH, encoding="utf-8")
    assert main([str(path)]) == 0
    assert capsys.readouterr().out == "ok\n"


def test_cli_builds_and_emits_deep_library(capsys, tmp_path):
    path = tmp_path / "deep.stk"
    path.write_text("@deep " + _nested(DEPTH), encoding="utf-8")
    assert main(["--lib", str(path)]) == 0
    assert main(["--emit", str(tmp_path / "deep.stk.lib")]) == 0
    assert capsys.readouterr().out.startswith("@deep { { {")
