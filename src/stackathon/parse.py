"""Stackathon parser — resolves braces and hoists top-level declarations."""

from __future__ import annotations

from .ast import (
    Pos,
    Program,
    TBlockLit,
    TBoolLit,
    TDecl,
    TFloatLit,
    TFnDecl,
    TInstr,
    TIntLit,
    TName,
    TOp,
    TStringLit,
    TTagDecl,
    TUse,
    TWord,
)
from .errors import ParseError
from .tokens import (
    KEYWORDS,
    TK_EOF,
    TK_FLOAT,
    TK_IDENT,
    TK_INT,
    TK_OP,
    TK_STRING,
    Token,
)


class Parser:
    """Single-pass parser for Stackathon token streams."""

    def __init__(self, tokens: list[Token], name: str = "<input>"):
        self.tokens: list[Token] = tokens
        self.pos: int = 0
        self.name: str = name

    # ── Helpers ──────────────────────────────────────────────

    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[len(self.tokens) - 1]
        return self.tokens[idx]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def at(self, value: str) -> bool:
        tok = self.current()
        return tok.type != TK_STRING and tok.value == value

    def at_type(self, type_: str) -> bool:
        return self.current().type == type_

    def error(self, msg: str) -> ParseError:
        return ParseError(msg, self._pos())

    def _pos(self) -> Pos:
        tok = self.current()
        return Pos(tok.line, tok.col)

    def _describe(self, tok: Token) -> str:
        if tok.type == TK_EOF:
            return "end of input"
        if tok.type == TK_STRING:
            return "string literal"
        return "'" + tok.value + "'"

    # ── Top Level ────────────────────────────────────────────

    def parse_program(self) -> Program:
        body: list[TInstr] = []
        decls: list[TDecl] = []
        while not self.at_type(TK_EOF):
            if self.at("@"):
                decls.append(self.parse_decl())
            elif self.at("use"):
                decls.append(self.parse_use())
            else:
                body.append(self.parse_instr())
        return Program(body, decls, self.name)

    def parse_decl(self) -> TDecl:
        sigil = self.advance()
        pos = Pos(sigil.line, sigil.col)
        name = self._expect_decl_name(sigil)
        if self.at("{"):
            return TFnDecl(pos, name, self.parse_block().body)
        return TTagDecl(pos, name)

    def _expect_decl_name(self, sigil: Token) -> str:
        tok = self.current()
        # The name must touch the sigil: `@ foo` is not a declaration.
        if tok.line != sigil.line or tok.col != sigil.col + 1:
            raise self.error("expected name directly after '@'")
        if tok.type in KEYWORDS:
            raise self.error("cannot declare keyword '" + tok.value + "'")
        if tok.type != TK_IDENT:
            raise self.error("expected name after '@', got " + self._describe(tok))
        return self.advance().value

    def parse_use(self) -> TUse:
        kw = self.advance()
        tok = self.current()
        if tok.type != TK_IDENT:
            raise self.error("expected library name after 'use', got " + self._describe(tok))
        self.advance()
        return TUse(Pos(kw.line, kw.col), tok.value)

    # ── Instructions ─────────────────────────────────────────

    def parse_block(self) -> TBlockLit:
        # Open blocks, innermost last; nesting never recurses.
        open_blocks: list[TBlockLit] = [self._open_block()]
        while True:
            if self.at_type(TK_EOF):
                raise ParseError("unmatched '{'", open_blocks[-1].pos)
            if self.at("}"):
                self.advance()
                done = open_blocks.pop()
                if not open_blocks:
                    return done
                open_blocks[-1].body.append(done)
            elif self.at("{"):
                open_blocks.append(self._open_block())
            elif self.at("@"):
                raise self.error("declarations are only allowed at top level")
            elif self.at("use"):
                raise self.error("'use' is only allowed at top level")
            else:
                open_blocks[-1].body.append(self.parse_instr())

    def _open_block(self) -> TBlockLit:
        tok = self.advance()
        return TBlockLit(Pos(tok.line, tok.col), [])

    def parse_instr(self) -> TInstr:
        tok = self.current()
        pos = self._pos()
        if tok.type == TK_INT:
            self.advance()
            return TIntLit(pos, int(tok.value))
        if tok.type == TK_FLOAT:
            self.advance()
            return TFloatLit(pos, float(tok.value))
        if tok.type == TK_STRING:
            self.advance()
            return TStringLit(pos, tok.value)
        if tok.type == TK_IDENT:
            self.advance()
            return TName(pos, tok.value)
        if tok.type == "true" or tok.type == "false":
            self.advance()
            return TBoolLit(pos, tok.type == "true")
        if tok.type in KEYWORDS:
            self.advance()
            return TWord(pos, tok.value)
        if tok.type == TK_OP:
            if tok.value == "{":
                return self.parse_block()
            if tok.value == "}":
                raise self.error("unmatched '}'")
            if tok.value == "@":
                raise self.error("unexpected '@'")
            self.advance()
            return TOp(pos, tok.value)
        raise self.error("unexpected " + self._describe(tok))
