"""Stackathon values, the shared stack, and the declaration environment."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable

from .ast import Pos, TDecl, TFnDecl, TInstr, TTagDecl, TUse
from .emit import render_block
from .errors import StackUnderflow, UndefinedName

log = logging.getLogger(__name__)


# ============================================================
# Values
# ============================================================


class Value:
    """A runtime value; exactly one of the six variants below."""

    def type_name(self) -> str:
        raise NotImplementedError

    def to_string(self) -> str:
        raise NotImplementedError


@dataclass(eq=False)
class VInt(Value):
    value: int

    def type_name(self) -> str:
        return "int"

    def to_string(self) -> str:
        return str(self.value)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, VInt) and self.value == other.value

    def __hash__(self) -> int:
        return hash(("int", self.value))


@dataclass(eq=False)
class VFloat(Value):
    value: float

    def type_name(self) -> str:
        return "float"

    def to_string(self) -> str:
        return str(self.value)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, VFloat) and self.value == other.value

    def __hash__(self) -> int:
        return hash(("float", self.value))


@dataclass(eq=False)
class VString(Value):
    value: str

    def type_name(self) -> str:
        return "string"

    def to_string(self) -> str:
        return self.value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, VString) and self.value == other.value

    def __hash__(self) -> int:
        return hash(("string", self.value))


@dataclass(eq=False)
class VBool(Value):
    value: bool

    def type_name(self) -> str:
        return "bool"

    def to_string(self) -> str:
        return "true" if self.value else "false"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, VBool) and self.value == other.value

    def __hash__(self) -> int:
        return hash(("bool", self.value))


@dataclass(eq=False)
class VBlock(Value):
    """An instruction list; two blocks are equal only if they share it."""

    body: list[TInstr]
    name: str | None = None

    def type_name(self) -> str:
        return "block"

    def to_string(self) -> str:
        return render_block(self.body)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, VBlock) and self.body is other.body

    def __hash__(self) -> int:
        return id(self.body)


@dataclass(eq=False)
class VTag(Value):
    name: str

    def type_name(self) -> str:
        return "tag"

    def to_string(self) -> str:
        return self.name

    def __eq__(self, other: object) -> bool:
        return isinstance(other, VTag) and self.name == other.name

    def __hash__(self) -> int:
        return hash(("tag", self.name))


BUILTIN_TAGS: list[str] = ["int", "float", "string", "bool", "block", "tag"]


def type_tag(v: Value) -> VTag:
    """The tag `type` pushes for a value."""
    return VTag(v.type_name())


# ============================================================
# Stack
# ============================================================


class Stack:
    """The single operand stack of a run; the last element is the top."""

    def __init__(self, items: Iterable[Value] = ()):
        self._items: list[Value] = list(items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __repr__(self) -> str:
        return "Stack(" + ", ".join(v.to_string() for v in self._items) + ")"

    def items(self) -> list[Value]:
        return list(self._items)

    def require(self, n: int, what: str, pos: Pos | None = None) -> None:
        if len(self._items) < n:
            raise StackUnderflow(
                f"'{what}' needs {n} item(s), stack has {len(self._items)}", pos
            )

    def push(self, v: Value) -> None:
        self._items.append(v)

    def pop(self, what: str, pos: Pos | None = None) -> Value:
        self.require(1, what, pos)
        return self._items.pop()

    def peek(self, depth: int = 0) -> Value:
        """Item `depth` positions below the top; caller checks bounds."""
        return self._items[-1 - depth]

    def remove(self, depth: int) -> Value:
        return self._items.pop(-1 - depth)

    def clear(self) -> None:
        self._items.clear()


# ============================================================
# Environment
# ============================================================


class Environment:
    """Flat, mutable namespace of functions and tags for one run.

    A function is stored as the `VBlock` its name pushes, so every push of
    the same name yields an equal (identical-body) block. Declarations are
    applied in order; a later declaration of a name replaces the earlier one.
    """

    def __init__(self, builtins: bool = True):
        self._defs: dict[str, Value] = {}
        if builtins:
            for name in BUILTIN_TAGS:
                self._defs[name] = VTag(name)

    def __contains__(self, name: str) -> bool:
        return name in self._defs

    def names(self) -> list[str]:
        return list(self._defs)

    def lookup(self, name: str, pos: Pos | None = None) -> Value:
        if name not in self._defs:
            raise UndefinedName(f"unknown name '{name}'", pos)
        return self._defs[name]

    def declare(self, decl: TDecl) -> None:
        if isinstance(decl, TFnDecl):
            value: Value = VBlock(decl.body, decl.name)
        elif isinstance(decl, TTagDecl):
            value = VTag(decl.name)
        else:
            raise TypeError("cannot declare " + type(decl).__name__)
        if decl.name in self._defs:
            log.debug("redeclaring '%s'", decl.name)
        self._defs[decl.name] = value

    def merge(self, decls: Iterable[TDecl]) -> int:
        """Apply a library's declarations; returns how many were applied."""
        n = 0
        for decl in decls:
            if isinstance(decl, TUse):
                continue
            self.declare(decl)
            n += 1
        return n
