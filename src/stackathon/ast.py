"""Stackathon AST — parse-time node definitions."""

from __future__ import annotations

from dataclasses import dataclass, field


# ============================================================
# POSITION
# ============================================================


@dataclass
class Pos:
    """Source position, 1-indexed."""

    line: int
    col: int


# ============================================================
# INSTRUCTIONS
# ============================================================


@dataclass
class TInstr:
    """Base for everything that can appear in an instruction stream."""

    pos: Pos


@dataclass
class TIntLit(TInstr):
    value: int


@dataclass
class TFloatLit(TInstr):
    value: float


@dataclass
class TStringLit(TInstr):
    """String literal with escapes resolved."""

    value: str


@dataclass
class TBoolLit(TInstr):
    """true or false."""

    value: bool


@dataclass
class TBlockLit(TInstr):
    """{ ... }; the body is captured once, here."""

    body: list[TInstr]


@dataclass
class TOp(TInstr):
    """Punctuation operator: + - * / ! = != < <= > >= & | $."""

    op: str


@dataclass
class TWord(TInstr):
    """Keyword instruction: dup, loop, print, exit, ..."""

    word: str


@dataclass
class TName(TInstr):
    """Bare identifier; pushes a declared tag or function, never calls it."""

    name: str


# ============================================================
# DECLARATIONS
# ============================================================


@dataclass
class TDecl:
    """Base for top-level items that shape the environment."""

    pos: Pos
    name: str


@dataclass
class TFnDecl(TDecl):
    """@name { body }."""

    body: list[TInstr]


@dataclass
class TTagDecl(TDecl):
    """@name with no body."""


@dataclass
class TUse(TDecl):
    """use name: merges a library's declarations at this point."""


# ============================================================
# PROGRAM
# ============================================================


@dataclass
class Program:
    """Top-level instruction stream plus declarations in source order."""

    body: list[TInstr]
    decls: list[TDecl] = field(default_factory=list)
    name: str = "<input>"

    def declarations(self) -> list[TDecl]:
        """Function and tag declarations, without `use` directives."""
        return [d for d in self.decls if not isinstance(d, TUse)]

    def uses(self) -> list[TUse]:
        return [d for d in self.decls if isinstance(d, TUse)]
