"""Stackathon CLI — run .stk files and build/inspect .stk.lib libraries."""

from __future__ import annotations

import logging
import os
import sys

from . import parse
from .ast import TDecl
from .emit import to_source
from .errors import LexError, LibraryFormatError, LibraryNotFound, ParseError, StackathonError
from .library import decode, encode
from .runtime import run

log = logging.getLogger(__name__)

LIB_SUFFIX = ".stk.lib"
PATH_ENV = "STACKATHON_PATH"

USAGE: str = """\
stackathon [OPTIONS] FILE

Run a Stackathon (.stk) program.

Options:
  --lib              Compile FILE's declarations into a library (FILE.lib)
  -o, --output PATH  Write the library to PATH instead
  --emit             Print the declarations stored in a .stk.lib FILE
  -L DIR             Add a library search directory (repeatable)
  -v, --verbose      Log debug information to stderr
  -h, --help         Show this help message

Environment:
  STACKATHON_PATH    Extra library directories, separated by os.pathsep
"""


class LibrarySearch:
    """Resolves `use name` to `name.stk.lib` in a list of directories."""

    def __init__(self, dirs: list[str]):
        self.dirs = dirs

    def find(self, name: str) -> str | None:
        for d in self.dirs:
            path = os.path.join(d, name + LIB_SUFFIX)
            if os.path.isfile(path):
                return path
        return None

    def load(self, name: str) -> list[TDecl]:
        path = self.find(name)
        if path is None:
            raise LibraryNotFound(
                "library '" + name + "' not found in " + os.pathsep.join(self.dirs)
            )
        log.debug("loading library '%s' from %s", name, path)
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise LibraryNotFound("cannot read '" + path + "': " + str(e)) from None
        try:
            return decode(data)
        except LibraryFormatError as e:
            raise LibraryFormatError(path + ": " + e.msg) from None


def library_output_path(filepath: str) -> str:
    """foo.stk -> foo.stk.lib; anything else gets the full suffix."""
    if filepath.endswith(".stk"):
        return filepath + ".lib"
    return filepath + LIB_SUFFIX


def search_dirs(filepath: str, extra: list[str], env_path: str) -> list[str]:
    dirs = [os.path.dirname(os.path.abspath(filepath))]
    dirs.extend(extra)
    for d in env_path.split(os.pathsep):
        if d != "":
            dirs.append(d)
    return dirs


def _read_file(filepath: str) -> tuple[bytes | None, int]:
    try:
        with open(filepath, "rb") as f:
            return f.read(), 0
    except FileNotFoundError:
        print("stackathon: " + filepath + ": No such file or directory", file=sys.stderr)
        return None, 1
    except OSError as e:
        print("stackathon: " + filepath + ": " + str(e), file=sys.stderr)
        return None, 1


def _report(e: StackathonError, source: str | None) -> None:
    print("stackathon: " + e.kind + " error: " + str(e), file=sys.stderr)
    # Syntax errors always point into this file, so show where.
    if source is None or e.pos is None or not isinstance(e, (LexError, ParseError)):
        return
    lines = source.split("\n")
    if 1 <= e.pos.line <= len(lines):
        print(lines[e.pos.line - 1], file=sys.stderr)
        print(" " * (e.pos.col - 1) + "^", file=sys.stderr)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        stream=sys.stderr, level=level, format="stackathon: %(levelname)s: %(message)s"
    )
    logging.getLogger("stackathon").setLevel(level)


def main(argv: list[str] | None = None) -> int:
    args = argv if argv is not None else sys.argv[1:]
    filepath: str = ""
    output: str = ""
    lib_mode = False
    emit_mode = False
    verbose = False
    lib_dirs: list[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            return 0
        elif arg == "--lib":
            lib_mode = True
            i += 1
        elif arg == "--emit":
            emit_mode = True
            i += 1
        elif arg == "--verbose" or arg == "-v":
            verbose = True
            i += 1
        elif arg == "-o" or arg == "--output" or arg == "-L":
            if i + 1 >= len(args):
                print("stackathon: " + arg + " requires an argument", file=sys.stderr)
                return 2
            if arg == "-L":
                lib_dirs.append(args[i + 1])
            else:
                output = args[i + 1]
            i += 2
        elif arg.startswith("-"):
            print("stackathon: unknown flag '" + arg + "'", file=sys.stderr)
            return 2
        elif filepath == "":
            filepath = arg
            i += 1
        else:
            print("stackathon: unexpected argument '" + arg + "'", file=sys.stderr)
            return 2
    if filepath == "":
        print("stackathon: missing file argument", file=sys.stderr)
        return 2
    if lib_mode and emit_mode:
        print("stackathon: --lib and --emit are mutually exclusive", file=sys.stderr)
        return 2
    if output != "" and not lib_mode:
        print("stackathon: -o only applies to --lib", file=sys.stderr)
        return 2

    _configure_logging(verbose)

    raw, code = _read_file(filepath)
    if raw is None:
        return code

    if emit_mode:
        try:
            sys.stdout.write(to_source(decode(raw)))
        except LibraryFormatError as e:
            _report(e, None)
            return 1
        return 0

    try:
        source = raw.decode("utf-8")
    except ValueError:
        print("stackathon: " + filepath + ": invalid utf-8", file=sys.stderr)
        return 1

    try:
        program = parse(source, filepath)
    except StackathonError as e:
        _report(e, source)
        return 1

    if lib_mode:
        if program.body:
            log.warning(
                "%s: discarding %d top-level instruction(s)", filepath, len(program.body)
            )
        for use in program.uses():
            log.warning(
                "%s: 'use %s' is not bundled into the library", filepath, use.name
            )
        data = encode(program.declarations())
        out_path = output if output != "" else library_output_path(filepath)
        try:
            with open(out_path, "wb") as f:
                f.write(data)
        except OSError as e:
            print("stackathon: cannot write '" + out_path + "': " + str(e), file=sys.stderr)
            return 1
        log.debug("wrote %d bytes to %s", len(data), out_path)
        return 0

    search = LibrarySearch(
        search_dirs(filepath, lib_dirs, os.environ.get(PATH_ENV, ""))
    )
    try:
        run(program, stdin=sys.stdin, stdout=sys.stdout, loader=search.load)
    except StackathonError as e:
        sys.stdout.flush()
        _report(e, source)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
