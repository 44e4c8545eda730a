"""Stackathon emitter — converts instructions and declarations back into source.

Total over the node types in `stackathon/ast.py`; the output re-parses to an
equal AST (modulo positions).
"""

from __future__ import annotations

from decimal import Decimal

from .ast import (
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


def render_instr(instr: TInstr) -> str:
    if isinstance(instr, TIntLit):
        return str(instr.value)
    if isinstance(instr, TFloatLit):
        return _render_float(instr.value)
    if isinstance(instr, TStringLit):
        return quote_string(instr.value)
    if isinstance(instr, TBoolLit):
        return "true" if instr.value else "false"
    if isinstance(instr, TBlockLit):
        return render_block(instr.body)
    if isinstance(instr, TOp):
        return instr.op
    if isinstance(instr, TWord):
        return instr.word
    if isinstance(instr, TName):
        return instr.name
    raise TypeError("unhandled instruction type")


def render_instrs(instrs: list[TInstr]) -> str:
    words: list[str] = []
    # One iterator per open block, innermost last.
    pending = [iter(instrs)]
    while pending:
        instr = next(pending[-1], None)
        if instr is None:
            pending.pop()
            if pending:
                words.append("}")
        elif isinstance(instr, TBlockLit):
            words.append("{")
            pending.append(iter(instr.body))
        else:
            words.append(render_instr(instr))
    return " ".join(words)


def render_block(body: list[TInstr]) -> str:
    if not body:
        return "{ }"
    return "{ " + render_instrs(body) + " }"


def render_decl(decl: TDecl) -> str:
    if isinstance(decl, TFnDecl):
        return "@" + decl.name + " " + render_block(decl.body)
    if isinstance(decl, TTagDecl):
        return "@" + decl.name
    if isinstance(decl, TUse):
        return "use " + decl.name
    raise TypeError("unhandled decl type")


def to_source(decls: list[TDecl], body: list[TInstr] | None = None) -> str:
    """Render declarations, one per line, then the instruction stream."""
    lines = [render_decl(d) for d in decls]
    if body:
        lines.append(render_instrs(body))
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def program_to_source(program: Program) -> str:
    return to_source(program.decls, program.body)


# ── Literals / Escapes ──────────────────────────────────────


def _render_float(v: float) -> str:
    text = repr(v)
    if "e" in text:
        # The lexer has no exponent syntax; spell it out positionally.
        text = format(Decimal(text), "f")
    if "." not in text and "inf" not in text and "nan" not in text:
        text += ".0"
    return text


def quote_string(s: str) -> str:
    out = '"'
    for ch in s:
        if ch == "\n":
            out += "\\n"
        elif ch == "\r":
            out += "\\r"
        elif ch == "\t":
            out += "\\t"
        elif ch == "\\":
            out += "\\\\"
        elif ch == '"':
            out += '\\"'
        else:
            out += ch
    return out + '"'
