"""Command-line driver: running files, building and inspecting libraries."""

import logging
import os

import pytest

from stackathon import parse
from stackathon.cli import PATH_ENV, library_output_path, main, search_dirs
from stackathon.library import decode


@pytest.fixture(autouse=True)
def _no_env_path(monkeypatch):
    monkeypatch.delenv(PATH_ENV, raising=False)


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return str(path)


# ============================================================
# Usage
# ============================================================


def test_help(capsys):
    assert main(["--help"]) == 0
    out = capsys.readouterr().out
    assert "--lib" in out and "STACKATHON_PATH" in out


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["--bogus", "x.stk"],
        ["x.stk", "y.stk"],
        ["-o"],
        ["-L"],
        ["--lib", "--emit", "x.stk"],
        ["-o", "out.lib", "x.stk"],
    ],
)
def test_bad_usage_exits_2(capsys, argv):
    assert main(argv) == 2
    assert capsys.readouterr().err.startswith("stackathon: ")


def test_missing_file(capsys, tmp_path):
    assert main([str(tmp_path / "absent.stk")]) == 1
    assert "No such file or directory" in capsys.readouterr().err


# ============================================================
# Running
# ============================================================


def test_run_prints(capsys, tmp_path):
    path = _write(tmp_path / "hello.stk", '"hi" print drop\n2 3 + print\n')
    assert main([path]) == 0
    assert capsys.readouterr().out == "hi\n5\n"


def test_exit_is_success(capsys, tmp_path):
    path = _write(tmp_path / "exit.stk", '"a" print exit "b" print')
    assert main([path]) == 0
    assert capsys.readouterr().out == "a\n"


def test_lex_error_shows_caret(capsys, tmp_path):
    path = _write(tmp_path / "bad.stk", "1 # 2\n")
    assert main([path]) == 1
    err = capsys.readouterr().err
    assert "stackathon: lex error: unexpected character: '#' at line 1 col 3" in err
    assert "\n1 # 2\n  ^\n" in err


def test_parse_error_shows_caret(capsys, tmp_path):
    path = _write(tmp_path / "bad.stk", "1 2\n  3 }\n")
    assert main([path]) == 1
    err = capsys.readouterr().err
    assert "parse error: unmatched '}' at line 2 col 5" in err
    assert "\n  3 }\n    ^\n" in err


def test_runtime_error_keeps_earlier_output(capsys, tmp_path):
    path = _write(tmp_path / "bad.stk", '"a" print 1 +')
    assert main([path]) == 1
    captured = capsys.readouterr()
    assert captured.out == "a\n"
    assert "stackathon: runtime error: '+'" in captured.err
    assert "^" not in captured.err


def test_undefined_name(capsys, tmp_path):
    path = _write(tmp_path / "bad.stk", "nope")
    assert main([path]) == 1
    assert "unknown name 'nope'" in capsys.readouterr().err


# ============================================================
# Libraries
# ============================================================


def test_build_library(tmp_path):
    path = _write(tmp_path / "math.stk", "@sq { dup * }\n@unit\n")
    assert main(["--lib", path]) == 0
    data = (tmp_path / "math.stk.lib").read_bytes()
    assert decode(data) == parse("@sq { dup * }\n@unit\n").declarations()


def test_build_library_to_output_path(tmp_path):
    path = _write(tmp_path / "math.stk", "@unit")
    out = tmp_path / "custom.lib"
    assert main(["--lib", "-o", str(out), path]) == 0
    assert out.exists()
    assert not (tmp_path / "math.stk.lib").exists()


def test_build_library_warns_about_discarded_code(caplog, tmp_path):
    path = _write(tmp_path / "math.stk", "use other\n@unit\n1 2 +\n")
    with caplog.at_level(logging.WARNING, logger="stackathon"):
        assert main(["--lib", path]) == 0
    assert "discarding 3 top-level instruction(s)" in caplog.text
    assert "'use other' is not bundled" in caplog.text


def _build_math(directory):
    path = _write(directory / "math.stk", "@sq { dup * }")
    assert main(["--lib", path]) == 0


def test_use_library_beside_program(capsys, tmp_path):
    _build_math(tmp_path)
    path = _write(tmp_path / "main.stk", "use math\n4 sq $ print")
    assert main([path]) == 0
    assert capsys.readouterr().out == "16\n"


def test_use_library_from_search_dir(capsys, tmp_path):
    libdir = tmp_path / "libs"
    libdir.mkdir()
    _build_math(libdir)
    path = _write(tmp_path / "main.stk", "use math\n5 sq $ print")
    assert main(["-L", str(libdir), path]) == 0
    assert capsys.readouterr().out == "25\n"


def test_use_library_from_env_path(capsys, monkeypatch, tmp_path):
    libdir = tmp_path / "libs"
    libdir.mkdir()
    _build_math(libdir)
    monkeypatch.setenv(PATH_ENV, str(libdir))
    path = _write(tmp_path / "main.stk", "use math\n3 sq $ print")
    assert main([path]) == 0
    assert capsys.readouterr().out == "9\n"


def test_missing_library(capsys, tmp_path):
    path = _write(tmp_path / "main.stk", "use nope\n1 print")
    assert main([path]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "library error: library 'nope' not found" in captured.err


def test_corrupt_library(capsys, tmp_path):
    (tmp_path / "broken.stk.lib").write_bytes(b"STKL\x00")
    path = _write(tmp_path / "main.stk", "use broken")
    assert main([path]) == 1
    err = capsys.readouterr().err
    assert "broken.stk.lib: unexpected end of data" in err


def test_emit_library(capsys, tmp_path):
    _build_math(tmp_path)
    capsys.readouterr()
    assert main(["--emit", str(tmp_path / "math.stk.lib")]) == 0
    assert capsys.readouterr().out == "@sq { dup * }\n"


def test_emit_rejects_source_file(capsys, tmp_path):
    path = _write(tmp_path / "main.stk", "1 print")
    assert main(["--emit", path]) == 1
    assert "library error: not a stackathon library" in capsys.readouterr().err


# ============================================================
# Helpers
# ============================================================


def test_library_output_path():
    assert library_output_path("a/math.stk") == "a/math.stk.lib"
    assert library_output_path("math") == "math.stk.lib"


def test_search_dirs_order(tmp_path):
    prog = str(tmp_path / "main.stk")
    dirs = search_dirs(prog, ["extra"], os.pathsep.join(["one", "", "two"]))
    assert dirs == [str(tmp_path), "extra", "one", "two"]


def test_verbose_logs_library_loading(caplog, capsys, tmp_path):
    _build_math(tmp_path)
    path = _write(tmp_path / "main.stk", "use math\n2 sq $ print")
    with caplog.at_level(logging.DEBUG, logger="stackathon"):
        assert main(["-v", path]) == 0
    assert capsys.readouterr().out == "4\n"
    assert "loading library 'math'" in caplog.text


def test_int_overflow_is_a_runtime_error(capsys, tmp_path):
    path = _write(tmp_path / "big.stk", "9223372036854775807 dup *")
    assert main([path]) == 1
    err = capsys.readouterr().err
    assert "stackathon: runtime error: '*' result does not fit in 64 bits" in err
    assert "Traceback" not in err
