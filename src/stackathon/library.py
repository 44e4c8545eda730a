"""Stackathon library artifacts (.stk.lib) — binary declaration tables.

Layout (big-endian):

    header  magic "STKL" | u16 version | u32 entry count
    entry   str name | u8 kind | pos | [function] instrs
    str     u32 byte length | UTF-8 bytes
    pos     u32 line | u32 col
    instrs  u32 count | (u8 code | pos | payload)*

Instruction payloads: int i64, float f64, string str, bool u8, block instrs,
op/word/name str. Kinds: 1 = tag, 2 = function.
"""

from __future__ import annotations

import logging
import struct

from .ast import (
    Pos,
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
from .errors import LibraryFormatError
from .tokens import KEYWORDS, MULTI_OPS, SINGLE_OPS, is_name

log = logging.getLogger(__name__)

MAGIC = b"STKL"
VERSION = 1

KIND_TAG = 1
KIND_FUNCTION = 2

CODE_INT = 0x01
CODE_FLOAT = 0x02
CODE_STRING = 0x03
CODE_BOOL = 0x04
CODE_BLOCK = 0x05
CODE_OP = 0x06
CODE_WORD = 0x07
CODE_NAME = 0x08

_OPS: set[str] = set(MULTI_OPS) | SINGLE_OPS
# Keywords that never appear as a word instruction.
_NOT_WORDS: set[str] = {"true", "false", "use"}

_U8 = struct.Struct(">B")
_U16 = struct.Struct(">H")
_U32 = struct.Struct(">I")
_I64 = struct.Struct(">q")
_F64 = struct.Struct(">d")


# ============================================================
# Encoding
# ============================================================


def encode(decls: list[TDecl]) -> bytes:
    """Serialize function and tag declarations; `use` directives are skipped."""
    entries = [d for d in decls if not isinstance(d, TUse)]
    out = bytearray()
    out += MAGIC
    out += _U16.pack(VERSION)
    out += _U32.pack(len(entries))
    for decl in entries:
        _put_str(out, decl.name)
        if isinstance(decl, TFnDecl):
            out += _U8.pack(KIND_FUNCTION)
            _put_pos(out, decl.pos)
            _put_instrs(out, decl.body)
        elif isinstance(decl, TTagDecl):
            out += _U8.pack(KIND_TAG)
            _put_pos(out, decl.pos)
        else:
            raise TypeError("cannot encode " + type(decl).__name__)
    log.debug("encoded %d declaration(s) into %d bytes", len(entries), len(out))
    return bytes(out)


def _put_str(out: bytearray, s: str) -> None:
    data = s.encode("utf-8")
    out += _U32.pack(len(data))
    out += data


def _put_pos(out: bytearray, pos: Pos) -> None:
    out += _U32.pack(pos.line)
    out += _U32.pack(pos.col)


def _put_instrs(out: bytearray, instrs: list[TInstr]) -> None:
    out += _U32.pack(len(instrs))
    # One iterator per open block, innermost last.
    pending = [iter(instrs)]
    while pending:
        instr = next(pending[-1], None)
        if instr is None:
            pending.pop()
        elif isinstance(instr, TBlockLit):
            out += _U8.pack(CODE_BLOCK)
            _put_pos(out, instr.pos)
            out += _U32.pack(len(instr.body))
            pending.append(iter(instr.body))
        else:
            _put_instr(out, instr)


def _put_instr(out: bytearray, instr: TInstr) -> None:
    if isinstance(instr, TIntLit):
        out += _U8.pack(CODE_INT)
        _put_pos(out, instr.pos)
        try:
            out += _I64.pack(instr.value)
        except struct.error:
            raise LibraryFormatError(
                f"integer {instr.value} does not fit in 64 bits", instr.pos
            ) from None
    elif isinstance(instr, TFloatLit):
        out += _U8.pack(CODE_FLOAT)
        _put_pos(out, instr.pos)
        out += _F64.pack(instr.value)
    elif isinstance(instr, TStringLit):
        out += _U8.pack(CODE_STRING)
        _put_pos(out, instr.pos)
        _put_str(out, instr.value)
    elif isinstance(instr, TBoolLit):
        out += _U8.pack(CODE_BOOL)
        _put_pos(out, instr.pos)
        out += _U8.pack(1 if instr.value else 0)
    elif isinstance(instr, TOp):
        out += _U8.pack(CODE_OP)
        _put_pos(out, instr.pos)
        _put_str(out, instr.op)
    elif isinstance(instr, TWord):
        out += _U8.pack(CODE_WORD)
        _put_pos(out, instr.pos)
        _put_str(out, instr.word)
    elif isinstance(instr, TName):
        out += _U8.pack(CODE_NAME)
        _put_pos(out, instr.pos)
        _put_str(out, instr.name)
    else:
        raise TypeError("cannot encode " + type(instr).__name__)


# ============================================================
# Decoding
# ============================================================


def decode(data: bytes) -> list[TDecl]:
    """Parse a library artifact. Raises LibraryFormatError on any defect."""
    return _Reader(data).read_library()


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def _take(self, n: int, what: str) -> bytes:
        if self.pos + n > len(self.data):
            raise LibraryFormatError(
                f"unexpected end of data reading {what} at offset {self.pos}"
            )
        chunk = self.data[self.pos : self.pos + n]
        self.pos += n
        return chunk

    def _unpack(self, fmt: struct.Struct, what: str):
        return fmt.unpack(self._take(fmt.size, what))[0]

    def read_library(self) -> list[TDecl]:
        if self._take(len(MAGIC), "header") != MAGIC:
            raise LibraryFormatError("not a stackathon library")
        version = self._unpack(_U16, "version")
        if version != VERSION:
            raise LibraryFormatError(
                f"unsupported library version {version} (expected {VERSION})"
            )
        count = self._unpack(_U32, "entry count")
        decls: list[TDecl] = []
        for _ in range(count):
            decls.append(self._read_entry())
        if self.pos != len(self.data):
            raise LibraryFormatError(
                f"{len(self.data) - self.pos} trailing byte(s) after last entry"
            )
        log.debug("decoded %d declaration(s) from %d bytes", len(decls), len(self.data))
        return decls

    def _read_entry(self) -> TDecl:
        name = self._read_name("declaration name")
        kind = self._unpack(_U8, "declaration kind")
        if kind == KIND_TAG:
            return TTagDecl(self._read_pos(), name)
        if kind == KIND_FUNCTION:
            pos = self._read_pos()
            return TFnDecl(pos, name, self._read_instrs())
        raise LibraryFormatError(f"unknown declaration kind {kind:#04x} for '{name}'")

    def _read_str(self, what: str) -> str:
        n = self._unpack(_U32, what)
        raw = self._take(n, what)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise LibraryFormatError(f"invalid UTF-8 in {what}") from None

    def _read_name(self, what: str) -> str:
        name = self._read_str(what)
        if not is_name(name):
            raise LibraryFormatError(f"invalid {what} '{name}'")
        return name

    def _read_pos(self) -> Pos:
        line = self._unpack(_U32, "position")
        col = self._unpack(_U32, "position")
        return Pos(line, col)

    def _read_instrs(self) -> list[TInstr]:
        top: list[TInstr] = []
        # (destination, instructions still to read into it), innermost last.
        pending = [(top, self._unpack(_U32, "instruction count"))]
        while pending:
            dest, remaining = pending[-1]
            if remaining == 0:
                pending.pop()
                continue
            pending[-1] = (dest, remaining - 1)
            code = self._unpack(_U8, "instruction code")
            pos = self._read_pos()
            if code == CODE_BLOCK:
                block = TBlockLit(pos, [])
                dest.append(block)
                pending.append((block.body, self._unpack(_U32, "instruction count")))
            else:
                dest.append(self._read_leaf(code, pos))
        return top

    def _read_leaf(self, code: int, pos: Pos) -> TInstr:
        if code == CODE_INT:
            return TIntLit(pos, self._unpack(_I64, "int"))
        if code == CODE_FLOAT:
            return TFloatLit(pos, self._unpack(_F64, "float"))
        if code == CODE_STRING:
            return TStringLit(pos, self._read_str("string"))
        if code == CODE_BOOL:
            b = self._unpack(_U8, "bool")
            if b > 1:
                raise LibraryFormatError(f"invalid bool byte {b:#04x}")
            return TBoolLit(pos, b == 1)
        if code == CODE_OP:
            op = self._read_str("operator")
            if op not in _OPS:
                raise LibraryFormatError(f"unknown operator '{op}'")
            return TOp(pos, op)
        if code == CODE_WORD:
            word = self._read_str("keyword")
            if word not in KEYWORDS or word in _NOT_WORDS:
                raise LibraryFormatError(f"unknown keyword '{word}'")
            return TWord(pos, word)
        if code == CODE_NAME:
            return TName(pos, self._read_name("name"))
        raise LibraryFormatError(f"unknown instruction code {code:#04x}")
