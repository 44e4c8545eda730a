"""Stackathon diagnostics — one exception class per failure kind."""

from __future__ import annotations

from .ast import Pos


class StackathonError(Exception):
    """Base error for lexing, parsing, linking and evaluation."""

    kind: str = "error"

    def __init__(self, msg: str, pos: Pos | None = None):
        if pos is None:
            super().__init__(msg)
        else:
            super().__init__(f"{msg} at line {pos.line} col {pos.col}")
        self.msg = msg
        self.pos = pos


class LexError(StackathonError):
    """Malformed literal, unterminated comment/string, unknown character."""

    kind = "lex"


class ParseError(StackathonError):
    """Unmatched braces or a malformed declaration."""

    kind = "parse"


class RuntimeFault(StackathonError):
    """Base for errors raised while executing instructions."""

    kind = "runtime"


class StackUnderflow(RuntimeFault):
    pass


class TypeMismatch(RuntimeFault):
    pass


class IndexOutOfRange(RuntimeFault):
    pass


class IntegerOverflow(RuntimeFault):
    """An int result outside the signed 64-bit range."""


class DivisionByZero(RuntimeFault):
    pass


class UndefinedName(RuntimeFault):
    pass


class LibraryFormatError(StackathonError):
    """Corrupt, truncated or version-mismatched library artifact."""

    kind = "library"


class LibraryNotFound(StackathonError):
    """A `use` directive named a library nobody could provide."""

    kind = "library"
