"""Stackathon runtime — link declarations and evaluate a program.

All block invocations share one stack and one environment. Invocations are
`Frame`s on an explicit list rather than Python calls, so nesting depth is
limited by MAX_FRAMES, not the interpreter's recursion limit. `exit` is not
an exception: `step` returns a flow value, and an `exited` result ends only
the innermost frame, the one started by `$`, `loop` or `gate`.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import operator
import sys
from typing import Callable, TextIO

from .ast import (
    Pos,
    Program,
    TBlockLit,
    TBoolLit,
    TDecl,
    TFloatLit,
    TInstr,
    TIntLit,
    TName,
    TOp,
    TStringLit,
    TUse,
    TWord,
)
from .errors import (
    DivisionByZero,
    IndexOutOfRange,
    IntegerOverflow,
    LibraryNotFound,
    RuntimeFault,
    StackUnderflow,
    TypeMismatch,
)
from .tokens import INT_MAX, INT_MIN
from .values import (
    Environment,
    Stack,
    Value,
    VBlock,
    VBool,
    VFloat,
    VInt,
    VString,
    type_tag,
)

log = logging.getLogger(__name__)


# ============================================================
# Control flow
# ============================================================


FLOW_NORMAL = "normal"
FLOW_EXITED = "exited"

# Resolves `use name` to that library's declarations.
Loader = Callable[[str], list[TDecl]]

# Active block invocations allowed at once (`$`, `loop` and `gate` each add one).
MAX_FRAMES = 100_000

# Longest string `*` may build, in characters.
MAX_STRING_LENGTH = 1 << 28


@dataclass
class Frame:
    """One block activation: its instructions and the next one to run."""

    body: list[TInstr]
    index: int = 0
    # Set for a loop body; the frame restarts while the body leaves `true`.
    loop_pos: Pos | None = None


@dataclass
class RunResult:
    stack: list[Value]
    env: Environment
    exited: bool


# ============================================================
# Entry points
# ============================================================


def link(
    program: Program, env: Environment, loader: Loader | None = None
) -> Environment:
    """Apply a program's declarations and `use` directives in source order."""
    for decl in program.decls:
        if isinstance(decl, TUse):
            if loader is None:
                raise LibraryNotFound(f"cannot load library '{decl.name}'", decl.pos)
            n = env.merge(loader(decl.name))
            log.debug("merged %d declaration(s) from library '%s'", n, decl.name)
        else:
            env.declare(decl)
    return env


def run(
    program: Program,
    env: Environment | None = None,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    loader: Loader | None = None,
) -> RunResult:
    """Link and run a parsed program. Raises a StackathonError on failure."""
    if env is None:
        env = Environment()
    link(program, env, loader)
    rt = Runtime(env, stdin=stdin, stdout=stdout)
    log.debug("running %s: %d instruction(s)", program.name, len(program.body))
    flow = rt.run_block(program.body)
    return RunResult(rt.stack.items(), env, flow == FLOW_EXITED)


# ============================================================
# Helpers
# ============================================================


def _is_number(v: Value) -> bool:
    return isinstance(v, (VInt, VFloat))


def _int_div_trunc(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        q = -q
    return q


def _float_div(a: float, b: float) -> float:
    if b != 0.0:
        return a / b
    if a == 0.0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _value_eq(a: Value, b: Value) -> bool:
    # Int and float compare numerically; everything else needs the same variant.
    if _is_number(a) and _is_number(b):
        return a.value == b.value  # type: ignore[attr-defined]
    return a == b


_ORDERINGS: dict[str, Callable[[object, object], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_ARITH: dict[str, Callable[[object, object], object]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
}


def _check_int(n: int, what: str, pos: Pos) -> VInt:
    if n < INT_MIN or n > INT_MAX:
        raise IntegerOverflow(f"'{what}' result does not fit in 64 bits", pos)
    return VInt(n)


def _mismatch(what: str, pos: Pos, *vals: Value) -> TypeMismatch:
    got = ", ".join(v.type_name() for v in vals)
    return TypeMismatch(f"'{what}' cannot be applied to {got}", pos)


# ============================================================
# Runtime
# ============================================================


class Runtime:
    def __init__(
        self,
        env: Environment,
        *,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        stack: Stack | None = None,
    ):
        self.env = env
        self.stack = stack if stack is not None else Stack()
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self._frames: list[Frame] = []

        self._ops: dict[str, Callable[[str, Pos], None]] = {
            "+": self._op_add,
            "-": self._op_arith,
            "*": self._op_mul,
            "/": self._op_div,
            "=": self._op_eq,
            "!=": self._op_eq,
            "<": self._op_compare,
            "<=": self._op_compare,
            ">": self._op_compare,
            ">=": self._op_compare,
            "&": self._op_logic,
            "|": self._op_logic,
            "!": self._op_not,
        }
        self._words: dict[str, Callable[[Pos], None]] = {
            "dup": self._w_dup,
            "drop": self._w_drop,
            "swap": self._w_swap,
            "depth": self._w_depth,
            "rot": self._w_rot,
            "nrot": self._w_nrot,
            "over": self._w_over,
            "tuck": self._w_tuck,
            "pick": self._w_pick,
            "roll": self._w_roll,
            "clear": self._w_clear,
            "type": self._w_type,
            "print": self._w_print,
            "input": self._w_input,
            "strlen": self._w_strlen,
        }

    # ---- Running -----------------------------------------------------------

    def run_block(self, body: list[TInstr]) -> str:
        """Execute `body` and every block it invokes; stops early on `exit`."""
        base = len(self._frames)
        self._frames.append(Frame(body))
        while len(self._frames) > base:
            frame = self._frames[-1]
            if frame.index >= len(frame.body):
                self._frames.pop()
                if frame.loop_pos is not None and self._loop_again(frame.loop_pos):
                    frame.index = 0
                    self._frames.append(frame)
                continue
            instr = frame.body[frame.index]
            frame.index += 1
            if self.step(instr) == FLOW_EXITED:
                self._frames.pop()
                if len(self._frames) == base:
                    return FLOW_EXITED
        return FLOW_NORMAL

    def _enter(
        self, body: list[TInstr], pos: Pos, loop_pos: Pos | None = None
    ) -> None:
        if len(self._frames) >= MAX_FRAMES:
            raise RuntimeFault("maximum block nesting depth exceeded", pos)
        self._frames.append(Frame(body, 0, loop_pos))

    def step(self, instr: TInstr) -> str:
        if isinstance(instr, TIntLit):
            self.stack.push(VInt(instr.value))
        elif isinstance(instr, TFloatLit):
            self.stack.push(VFloat(instr.value))
        elif isinstance(instr, TStringLit):
            self.stack.push(VString(instr.value))
        elif isinstance(instr, TBoolLit):
            self.stack.push(VBool(instr.value))
        elif isinstance(instr, TBlockLit):
            self.stack.push(VBlock(instr.body))
        elif isinstance(instr, TName):
            self.stack.push(self.env.lookup(instr.name, instr.pos))
        elif isinstance(instr, TOp):
            if instr.op == "$":
                self._call(instr.pos)
            elif instr.op in self._ops:
                self._ops[instr.op](instr.op, instr.pos)
            else:
                raise RuntimeFault(f"unknown operator '{instr.op}'", instr.pos)
        elif isinstance(instr, TWord):
            if instr.word == "exit":
                return FLOW_EXITED
            if instr.word == "loop":
                self._loop(instr.pos)
            elif instr.word == "gate":
                self._gate(instr.pos)
            elif instr.word in self._words:
                self._words[instr.word](instr.pos)
            else:
                raise RuntimeFault(f"'{instr.word}' is not an instruction", instr.pos)
        else:
            raise RuntimeFault("unsupported instruction", instr.pos)
        return FLOW_NORMAL

    # ---- Stack access ------------------------------------------------------

    def _pop(self, what: str, pos: Pos) -> Value:
        return self.stack.pop(what, pos)

    def _pop2(self, what: str, pos: Pos) -> tuple[Value, Value]:
        """Pop (left, right); right was on top."""
        self.stack.require(2, what, pos)
        right = self.stack.pop(what, pos)
        left = self.stack.pop(what, pos)
        return left, right

    def _pop_block(self, what: str, pos: Pos) -> VBlock:
        v = self._pop(what, pos)
        if not isinstance(v, VBlock):
            raise TypeMismatch(f"'{what}' expects a block, got {v.type_name()}", pos)
        return v

    def _pop_bool(self, what: str, pos: Pos) -> bool:
        v = self._pop(what, pos)
        if not isinstance(v, VBool):
            raise TypeMismatch(f"'{what}' expects a bool, got {v.type_name()}", pos)
        return v.value

    def _pop_index(self, what: str, pos: Pos) -> int:
        v = self._pop(what, pos)
        if not isinstance(v, VInt):
            raise TypeMismatch(f"'{what}' expects an int, got {v.type_name()}", pos)
        if v.value < 0 or v.value >= len(self.stack):
            raise IndexOutOfRange(
                f"'{what}' index {v.value} out of range for depth {len(self.stack)}",
                pos,
            )
        return v.value

    # ---- Operators ---------------------------------------------------------

    def _op_add(self, op: str, pos: Pos) -> None:
        left, right = self._pop2(op, pos)
        if isinstance(left, VString) and isinstance(right, VString):
            self.stack.push(VString(left.value + right.value))
            return
        self.stack.push(self._arith(op, left, right, pos))

    def _op_arith(self, op: str, pos: Pos) -> None:
        left, right = self._pop2(op, pos)
        self.stack.push(self._arith(op, left, right, pos))

    def _arith(self, op: str, left: Value, right: Value, pos: Pos) -> Value:
        if not (_is_number(left) and _is_number(right)):
            raise _mismatch(op, pos, left, right)
        a = left.value  # type: ignore[attr-defined]
        b = right.value  # type: ignore[attr-defined]
        if isinstance(left, VInt) and isinstance(right, VInt):
            return _check_int(_ARITH[op](a, b), op, pos)
        return VFloat(_ARITH[op](float(a), float(b)))

    def _op_mul(self, op: str, pos: Pos) -> None:
        left, right = self._pop2(op, pos)
        if isinstance(left, VString) and isinstance(right, VInt):
            self.stack.push(self._repeat(left.value, right.value, pos))
        elif isinstance(left, VInt) and isinstance(right, VString):
            self.stack.push(self._repeat(right.value, left.value, pos))
        else:
            self.stack.push(self._arith(op, left, right, pos))

    def _repeat(self, s: str, n: int, pos: Pos) -> VString:
        # A negative count repeats nothing.
        if n > 0 and len(s) * n > MAX_STRING_LENGTH:
            raise RuntimeFault(
                f"repeated string would exceed {MAX_STRING_LENGTH} characters", pos
            )
        return VString(s * max(n, 0))

    def _op_div(self, op: str, pos: Pos) -> None:
        left, right = self._pop2(op, pos)
        if isinstance(left, VString) and isinstance(right, VInt):
            self.stack.push(self._index(left.value, right.value, pos))
        elif isinstance(left, VInt) and isinstance(right, VString):
            self.stack.push(self._index(right.value, left.value, pos))
        elif isinstance(left, VInt) and isinstance(right, VInt):
            if right.value == 0:
                raise DivisionByZero("integer division by zero", pos)
            q = _int_div_trunc(left.value, right.value)
            self.stack.push(_check_int(q, op, pos))
        elif _is_number(left) and _is_number(right):
            a = float(left.value)  # type: ignore[attr-defined]
            b = float(right.value)  # type: ignore[attr-defined]
            self.stack.push(VFloat(_float_div(a, b)))
        else:
            raise _mismatch(op, pos, left, right)

    def _index(self, s: str, i: int, pos: Pos) -> VString:
        if i < 0 or i >= len(s):
            raise IndexOutOfRange(
                f"string index {i} out of range for length {len(s)}", pos
            )
        return VString(s[i])

    def _op_eq(self, op: str, pos: Pos) -> None:
        left, right = self._pop2(op, pos)
        equal = _value_eq(left, right)
        self.stack.push(VBool(equal if op == "=" else not equal))

    def _op_compare(self, op: str, pos: Pos) -> None:
        left, right = self._pop2(op, pos)
        if _is_number(left) and _is_number(right):
            pass
        elif isinstance(left, VString) and isinstance(right, VString):
            pass
        elif isinstance(left, VBool) and isinstance(right, VBool):
            pass
        else:
            raise _mismatch(op, pos, left, right)
        a = left.value  # type: ignore[attr-defined]
        b = right.value  # type: ignore[attr-defined]
        self.stack.push(VBool(_ORDERINGS[op](a, b)))

    def _op_logic(self, op: str, pos: Pos) -> None:
        left, right = self._pop2(op, pos)
        if not (isinstance(left, VBool) and isinstance(right, VBool)):
            raise _mismatch(op, pos, left, right)
        if op == "&":
            self.stack.push(VBool(left.value and right.value))
        else:
            self.stack.push(VBool(left.value or right.value))

    def _op_not(self, op: str, pos: Pos) -> None:
        self.stack.push(VBool(not self._pop_bool(op, pos)))

    # ---- Stack words -------------------------------------------------------

    def _w_dup(self, pos: Pos) -> None:
        self.stack.require(1, "dup", pos)
        self.stack.push(self.stack.peek())

    def _w_drop(self, pos: Pos) -> None:
        self._pop("drop", pos)

    def _w_swap(self, pos: Pos) -> None:
        a, b = self._pop2("swap", pos)
        self.stack.push(b)
        self.stack.push(a)

    def _w_depth(self, pos: Pos) -> None:
        self.stack.push(VInt(len(self.stack)))

    def _w_rot(self, pos: Pos) -> None:
        # (a b c -- b c a)
        self.stack.require(3, "rot", pos)
        self.stack.push(self.stack.remove(2))

    def _w_nrot(self, pos: Pos) -> None:
        # (a b c -- c a b)
        self.stack.require(3, "nrot", pos)
        c = self.stack.pop("nrot", pos)
        b = self.stack.pop("nrot", pos)
        a = self.stack.pop("nrot", pos)
        self.stack.push(c)
        self.stack.push(a)
        self.stack.push(b)

    def _w_over(self, pos: Pos) -> None:
        self.stack.require(2, "over", pos)
        self.stack.push(self.stack.peek(1))

    def _w_tuck(self, pos: Pos) -> None:
        # (a b -- b a b)
        a, b = self._pop2("tuck", pos)
        self.stack.push(b)
        self.stack.push(a)
        self.stack.push(b)

    def _w_pick(self, pos: Pos) -> None:
        n = self._pop_index("pick", pos)
        self.stack.push(self.stack.peek(n))

    def _w_roll(self, pos: Pos) -> None:
        n = self._pop_index("roll", pos)
        self.stack.push(self.stack.remove(n))

    def _w_clear(self, pos: Pos) -> None:
        self.stack.clear()

    # ---- Values / I/O ------------------------------------------------------

    def _w_type(self, pos: Pos) -> None:
        self.stack.push(type_tag(self._pop("type", pos)))

    def _w_print(self, pos: Pos) -> None:
        # Peeks: the printed value stays on the stack.
        self.stack.require(1, "print", pos)
        self.stdout.write(self.stack.peek().to_string() + "\n")
        self.stdout.flush()

    def _w_input(self, pos: Pos) -> None:
        line = self.stdin.readline()
        if line.endswith("\n"):
            line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
        self.stack.push(VString(line))

    def _w_strlen(self, pos: Pos) -> None:
        v = self._pop("strlen", pos)
        if not isinstance(v, VString):
            raise _mismatch("strlen", pos, v)
        self.stack.push(VInt(len(v.value)))

    # ---- Control flow ------------------------------------------------------

    def _call(self, pos: Pos) -> None:
        block = self._pop_block("$", pos)
        self._enter(block.body, pos)

    def _loop(self, pos: Pos) -> None:
        body = self._pop_block("loop", pos)
        if self._pop_bool("loop", pos):
            self._enter(body.body, pos, loop_pos=pos)

    def _loop_again(self, pos: Pos) -> bool:
        """Pop the bool a finished loop body left behind."""
        if len(self.stack) == 0:
            raise StackUnderflow("loop body must leave a bool on the stack", pos)
        top = self.stack.pop("loop", pos)
        if not isinstance(top, VBool):
            raise TypeMismatch(
                f"loop body must leave a bool, got {top.type_name()}", pos
            )
        return top.value

    def _gate(self, pos: Pos) -> None:
        on_true = self._pop_block("gate", pos)
        on_false: VBlock | None = None
        # A second block directly under the first is the false branch.
        if len(self.stack) > 0 and isinstance(self.stack.peek(), VBlock):
            on_false = self._pop_block("gate", pos)
        if self._pop_bool("gate", pos):
            self._enter(on_true.body, pos)
        elif on_false is not None:
            self._enter(on_false.body, pos)
