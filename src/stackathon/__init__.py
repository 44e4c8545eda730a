"""Stackathon lexer, parser, runtime and library codec — public API."""

from __future__ import annotations

import logging
from typing import TextIO

from .ast import Program, TDecl
from .emit import to_source
from .errors import (
    DivisionByZero as DivisionByZero,
    IndexOutOfRange as IndexOutOfRange,
    IntegerOverflow as IntegerOverflow,
    LexError as LexError,
    LibraryFormatError as LibraryFormatError,
    LibraryNotFound as LibraryNotFound,
    ParseError as ParseError,
    RuntimeFault as RuntimeFault,
    StackathonError as StackathonError,
    StackUnderflow as StackUnderflow,
    TypeMismatch as TypeMismatch,
    UndefinedName as UndefinedName,
)
from .library import decode, encode
from .parse import Parser
from .runtime import Loader, RunResult, run
from .tokens import tokenize
from .values import Environment

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"


def parse(source: str, name: str = "<input>") -> Program:
    """Parse Stackathon source code into a Program."""
    return Parser(tokenize(source), name).parse_program()


def run_source(
    source: str,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    loader: Loader | None = None,
    env: Environment | None = None,
) -> RunResult:
    """Parse and run source text in a fresh (or given) environment."""
    return run(parse(source), env, stdin=stdin, stdout=stdout, loader=loader)


def compile_library(source: str, name: str = "<input>") -> bytes:
    """Encode the declarations of a source file as a library artifact."""
    return encode(parse(source, name).declarations())


def load_library(data: bytes) -> list[TDecl]:
    """Decode a library artifact into declarations."""
    return decode(data)


def disassemble(data: bytes) -> str:
    """Render a library artifact's declarations as source text."""
    return to_source(decode(data))
