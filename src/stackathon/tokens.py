"""Stackathon tokenizer — lexes source into a flat token list."""

from __future__ import annotations

from .ast import Pos
from .errors import LexError


# Token type constants
TK_INT = "INT"
TK_FLOAT = "FLOAT"
TK_STRING = "STRING"
TK_IDENT = "IDENT"
TK_OP = "OP"
TK_EOF = "EOF"

KEYWORDS: set[str] = {
    "clear",
    "depth",
    "drop",
    "dup",
    "exit",
    "false",
    "gate",
    "input",
    "loop",
    "nrot",
    "over",
    "pick",
    "print",
    "roll",
    "rot",
    "strlen",
    "swap",
    "true",
    "tuck",
    "type",
    "use",
}

# Multi-character operators, checked before single ones
MULTI_OPS: list[str] = [
    "!=",
    "<=",
    ">=",
]

SINGLE_OPS: set[str] = {
    "+",
    "-",
    "*",
    "/",
    "!",
    "=",
    "<",
    ">",
    "&",
    "|",
    "$",
}

ESCAPE_MAP: dict[str, str] = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "\\": "\\",
    '"': '"',
}

INT_MIN = -(2**63)
INT_MAX = 2**63 - 1


class Token:
    """A token with type, value, and position."""

    def __init__(self, type_: str, value: str, line: int, col: int):
        self.type: str = type_
        self.value: str = value
        self.line: int = line
        self.col: int = col

    def __repr__(self) -> str:
        return (
            "Token("
            + self.type
            + ", "
            + repr(self.value)
            + ", "
            + str(self.line)
            + ", "
            + str(self.col)
            + ")"
        )


def _is_digit(c: str) -> bool:
    return c >= "0" and c <= "9"


def _is_alpha(c: str) -> bool:
    return (c >= "a" and c <= "z") or (c >= "A" and c <= "Z") or c == "_"


def _is_alnum(c: str) -> bool:
    return _is_alpha(c) or _is_digit(c)


def is_name(s: str) -> bool:
    """True for text that lexes as a single non-keyword identifier."""
    if s == "" or not _is_alpha(s[0]) or s in KEYWORDS:
        return False
    for c in s:
        if not _is_alnum(c):
            return False
    return True


def _is_space(c: str) -> bool:
    return c == " " or c == "\t" or c == "\r" or c == "\n"


def _at_delim(src: str, pos: int) -> bool:
    """True when a token ending just before `pos` is properly separated."""
    if pos >= len(src):
        return True
    c = src[pos]
    return _is_space(c) or c == "{" or c == "}" or c == ";"


def _starts_number(src: str, pos: int) -> bool:
    c = src[pos]
    nxt = src[pos + 1] if pos + 1 < len(src) else ""
    if _is_digit(c):
        return True
    if c == "." and _is_digit(nxt):
        return True
    if c == "-":
        if _is_digit(nxt):
            return True
        if nxt == "." and pos + 2 < len(src) and _is_digit(src[pos + 2]):
            return True
    return False


def tokenize(source: str) -> list[Token]:
    """Tokenize Stackathon source into a flat list ending with TK_EOF."""
    tokens: list[Token] = []
    pos = 0
    line = 1
    col = 1
    length = len(source)

    while pos < length:
        c = source[pos]

        # Newlines
        if c == "\n":
            pos += 1
            line += 1
            col = 1
            continue

        # Whitespace
        if c == " " or c == "\t" or c == "\r":
            pos += 1
            col += 1
            continue

        start_line = line
        start_col = col

        # Comment: ; ... ;
        if c == ";":
            pos += 1
            col += 1
            while pos < length and source[pos] != ";":
                if source[pos] == "\n":
                    line += 1
                    col = 1
                else:
                    col += 1
                pos += 1
            if pos >= length:
                raise LexError("unterminated comment", Pos(start_line, start_col))
            pos += 1  # skip closing ;
            col += 1
            continue

        start_pos = pos

        # Number: int or float, optionally negative
        if _starts_number(source, pos):
            if c == "-":
                pos += 1
                col += 1
            saw_dot = False
            while pos < length and (_is_digit(source[pos]) or source[pos] == "."):
                if source[pos] == ".":
                    if saw_dot:
                        raise LexError("invalid number format", Pos(line, col))
                    saw_dot = True
                pos += 1
                col += 1
            if not _at_delim(source, pos):
                raise LexError("invalid number format", Pos(line, col))
            raw = source[start_pos:pos]
            if saw_dot:
                tokens.append(Token(TK_FLOAT, raw, start_line, start_col))
            else:
                if int(raw) < INT_MIN or int(raw) > INT_MAX:
                    raise LexError(
                        "integer literal out of range: " + raw,
                        Pos(start_line, start_col),
                    )
                tokens.append(Token(TK_INT, raw, start_line, start_col))
            continue

        # String literal: "..."
        if c == '"':
            pos += 1
            col += 1
            chars: list[str] = []
            while pos < length and source[pos] != '"':
                ch = source[pos]
                if ch == "\\":
                    if pos + 1 >= length:
                        raise LexError(
                            "unterminated string literal", Pos(start_line, start_col)
                        )
                    esc = source[pos + 1]
                    if esc not in ESCAPE_MAP:
                        raise LexError("invalid escape: \\" + esc, Pos(line, col))
                    chars.append(ESCAPE_MAP[esc])
                    pos += 2
                    col += 2
                    continue
                chars.append(ch)
                pos += 1
                if ch == "\n":
                    line += 1
                    col = 1
                else:
                    col += 1
            if pos >= length:
                raise LexError(
                    "unterminated string literal", Pos(start_line, start_col)
                )
            pos += 1  # skip closing "
            col += 1
            if not _at_delim(source, pos):
                raise LexError(
                    "unexpected character: " + repr(source[pos]), Pos(line, col)
                )
            tokens.append(Token(TK_STRING, "".join(chars), start_line, start_col))
            continue

        # Identifier or keyword
        if _is_alpha(c):
            while pos < length and _is_alnum(source[pos]):
                pos += 1
                col += 1
            if not _at_delim(source, pos):
                raise LexError(
                    "unexpected character: " + repr(source[pos]), Pos(line, col)
                )
            word = source[start_pos:pos]
            if word in KEYWORDS:
                tokens.append(Token(word, word, start_line, start_col))
            else:
                tokens.append(Token(TK_IDENT, word, start_line, start_col))
            continue

        # Braces and the declaration sigil need no separation
        if c == "{" or c == "}" or c == "@":
            tokens.append(Token(TK_OP, c, start_line, start_col))
            pos += 1
            col += 1
            continue

        # Multi-character operators
        matched = ""
        for op in MULTI_OPS:
            if source[pos : pos + len(op)] == op:
                matched = op
                break
        if matched == "" and c in SINGLE_OPS:
            matched = c
        if matched != "":
            pos += len(matched)
            col += len(matched)
            if not _at_delim(source, pos):
                raise LexError(
                    "unexpected character: " + repr(source[pos]), Pos(line, col)
                )
            tokens.append(Token(TK_OP, matched, start_line, start_col))
            continue

        raise LexError("unexpected character: " + repr(c), Pos(line, col))

    tokens.append(Token(TK_EOF, "", line, col))
    return tokens
