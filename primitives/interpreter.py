"""Off-machine interpreter for gadget scripts.

Executes a Script with tapscript semantics (OP_CAT enabled): minimal 4-byte
script numbers for every numeric operand, MINIMALIF, 520-byte elements,
1000 items across the main and alt stacks, and a clean final stack.

This is the test harness for every gadget; it also reports the peak stack
usage, which together with len(script) is the resource budget that matters
on-chain.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from primitives.errors import NonCanonicalEncodingError, ScriptError
from primitives.hash import SHA256, HashFunction
from primitives.opcodes import Opcode
from primitives.script import Script
from primitives.script_num import MAX_NUM_SIZE, decode_num, encode_num

logger = logging.getLogger(__name__)

# --- Configuration ---


@dataclass(frozen=True)
class ExecutionLimits:
    """Resource ceilings enforced during execution."""

    max_stack_items: int = 1000
    max_element_size: int = 520
    max_num_size: int = MAX_NUM_SIZE


DEFAULT_LIMITS = ExecutionLimits()


@dataclass
class ExecutionResult:
    """Outcome of one script run.

    Attributes:
        success: True iff the script ran to the end with a clean, true stack
        error: Failure description (None on success)
        final_stack: Main stack at the point execution stopped (bottom first)
        max_stack_items: Peak number of items across main and alt stacks
        opcodes_executed: Number of items executed (pushes included)
    """

    success: bool
    error: Optional[str] = None
    final_stack: List[bytes] = field(default_factory=list)
    max_stack_items: int = 0
    opcodes_executed: int = 0


# --- Helpers ---

def cast_to_bool(value: bytes) -> bool:
    """Stack truthiness: any nonzero byte, except a lone sign bit at the end."""
    for i, byte in enumerate(value):
        if byte != 0:
            return not (i == len(value) - 1 and byte == 0x80)
    return False


def _bool(value: bool) -> bytes:
    return b"\x01" if value else b""


# --- Interpreter ---

class Interpreter:
    """Stack machine for a single script run."""

    def __init__(
        self,
        hasher: HashFunction = SHA256,
        limits: ExecutionLimits = DEFAULT_LIMITS,
    ) -> None:
        self.hasher = hasher
        self.limits = limits
        self.stack: List[bytes] = []
        self.altstack: List[bytes] = []
        self.max_stack_items = 0
        self._ops: Dict[Opcode, Callable[[], None]] = self._build_dispatch()

    # --- Entry Point ---

    def run(self, body: Script) -> ExecutionResult:
        """Execute body from a fresh state and report the outcome."""
        self.stack = []
        self.altstack = []
        self.max_stack_items = 0
        executed = 0

        try:
            exec_stack: List[bool] = []
            for position, item in enumerate(body):
                try:
                    executing = all(exec_stack)
                    if isinstance(item, Opcode) and self._is_conditional(item):
                        self._step_conditional(item, exec_stack, executing)
                    elif executing:
                        self._step(item)
                    else:
                        continue
                    executed += 1
                    self._check_stack_size()
                except ScriptError as e:
                    if e.position is None:
                        e.position = position
                    raise

            if exec_stack:
                raise ScriptError("unbalanced conditional at end of script")
            if len(self.stack) != 1:
                raise ScriptError(f"stack not clean: {len(self.stack)} items left")
            if not cast_to_bool(self.stack[0]):
                raise ScriptError("script evaluated to false")
        except ScriptError as e:
            logger.debug("script failed: %s", e)
            return ExecutionResult(
                success=False,
                error=str(e),
                final_stack=list(self.stack),
                max_stack_items=self.max_stack_items,
                opcodes_executed=executed,
            )

        return ExecutionResult(
            success=True,
            final_stack=list(self.stack),
            max_stack_items=self.max_stack_items,
            opcodes_executed=executed,
        )

    # --- Stepping ---

    @staticmethod
    def _is_conditional(op: Opcode) -> bool:
        return op in (Opcode.OP_IF, Opcode.OP_NOTIF, Opcode.OP_ELSE, Opcode.OP_ENDIF)

    def _step_conditional(self, op: Opcode, exec_stack: List[bool], executing: bool) -> None:
        if op in (Opcode.OP_IF, Opcode.OP_NOTIF):
            value = False
            if executing:
                top = self._pop()
                if top not in (b"", b"\x01"):
                    raise ScriptError(f"{op.name} argument must be minimal")
                value = top == b"\x01"
                if op == Opcode.OP_NOTIF:
                    value = not value
            exec_stack.append(value)
        elif op == Opcode.OP_ELSE:
            if not exec_stack:
                raise ScriptError("OP_ELSE without OP_IF")
            exec_stack[-1] = not exec_stack[-1]
        else:
            if not exec_stack:
                raise ScriptError("OP_ENDIF without OP_IF")
            exec_stack.pop()

    def _step(self, item) -> None:
        if isinstance(item, bytes):
            if len(item) > self.limits.max_element_size:
                raise ScriptError(f"push of {len(item)} bytes exceeds element limit")
            self._push(item)
            return

        if item == self.hasher.opcode:
            self._push(self.hasher.digest(self._pop()))
            return

        handler = self._ops.get(item)
        if handler is None:
            raise ScriptError(f"opcode {item.name} is not supported")
        handler()

    def _check_stack_size(self) -> None:
        n = len(self.stack) + len(self.altstack)
        self.max_stack_items = max(self.max_stack_items, n)
        if n > self.limits.max_stack_items:
            raise ScriptError(f"stack size {n} exceeds {self.limits.max_stack_items}")

    # --- Stack Access ---

    def _push(self, value: bytes) -> None:
        self.stack.append(value)

    def _pop(self) -> bytes:
        if not self.stack:
            raise ScriptError("stack underflow")
        return self.stack.pop()

    def _peek(self, depth: int) -> bytes:
        if depth < 0 or depth >= len(self.stack):
            raise ScriptError("stack underflow")
        return self.stack[-1 - depth]

    def _pop_num(self) -> int:
        try:
            return decode_num(self._pop(), self.limits.max_num_size)
        except NonCanonicalEncodingError as e:
            raise ScriptError(str(e)) from e

    def _push_num(self, value: int) -> None:
        self._push(encode_num(value))

    # --- Opcode Table ---

    def _build_dispatch(self) -> Dict[Opcode, Callable[[], None]]:
        O = Opcode
        return {
            O.OP_NOP: lambda: None,
            O.OP_VERIFY: self._op_verify,
            O.OP_RETURN: self._op_return,
            O.OP_TOALTSTACK: self._op_toaltstack,
            O.OP_FROMALTSTACK: self._op_fromaltstack,
            O.OP_2DROP: self._op_2drop,
            O.OP_2DUP: lambda: self._copy(1, 1),
            O.OP_3DUP: lambda: self._copy(2, 2, 2),
            O.OP_2OVER: lambda: self._copy(3, 3),
            O.OP_2ROT: lambda: self._move(5, 5),
            O.OP_2SWAP: lambda: self._move(3, 3),
            O.OP_IFDUP: self._op_ifdup,
            O.OP_DEPTH: lambda: self._push_num(len(self.stack)),
            O.OP_DROP: self._pop,
            O.OP_DUP: lambda: self._copy(0),
            O.OP_NIP: self._op_nip,
            O.OP_OVER: lambda: self._copy(1),
            O.OP_PICK: self._op_pick,
            O.OP_ROLL: self._op_roll,
            O.OP_ROT: lambda: self._move(2),
            O.OP_SWAP: lambda: self._move(1),
            O.OP_TUCK: self._op_tuck,
            O.OP_CAT: self._op_cat,
            O.OP_SIZE: lambda: self._push_num(len(self._peek(0))),
            O.OP_EQUAL: lambda: self._push(_bool(self._pop() == self._pop())),
            O.OP_EQUALVERIFY: self._op_equalverify,
            O.OP_1ADD: lambda: self._unary(lambda a: a + 1),
            O.OP_1SUB: lambda: self._unary(lambda a: a - 1),
            O.OP_NEGATE: lambda: self._unary(lambda a: -a),
            O.OP_ABS: lambda: self._unary(abs),
            O.OP_NOT: lambda: self._unary(lambda a: int(a == 0)),
            O.OP_0NOTEQUAL: lambda: self._unary(lambda a: int(a != 0)),
            O.OP_ADD: lambda: self._binary(lambda a, b: a + b),
            O.OP_SUB: lambda: self._binary(lambda a, b: a - b),
            O.OP_BOOLAND: lambda: self._binary(lambda a, b: int(a != 0 and b != 0)),
            O.OP_BOOLOR: lambda: self._binary(lambda a, b: int(a != 0 or b != 0)),
            O.OP_NUMEQUAL: lambda: self._binary(lambda a, b: int(a == b)),
            O.OP_NUMEQUALVERIFY: self._op_numequalverify,
            O.OP_NUMNOTEQUAL: lambda: self._binary(lambda a, b: int(a != b)),
            O.OP_LESSTHAN: lambda: self._binary(lambda a, b: int(a < b)),
            O.OP_GREATERTHAN: lambda: self._binary(lambda a, b: int(a > b)),
            O.OP_LESSTHANOREQUAL: lambda: self._binary(lambda a, b: int(a <= b)),
            O.OP_GREATERTHANOREQUAL: lambda: self._binary(lambda a, b: int(a >= b)),
            O.OP_MIN: lambda: self._binary(min),
            O.OP_MAX: lambda: self._binary(max),
            O.OP_WITHIN: self._op_within,
        }

    # --- Generic Stack Moves ---

    def _copy(self, *depths: int) -> None:
        """Push copies of the items at the given depths, one after another."""
        for depth in depths:
            self._push(self._peek(depth))

    def _move(self, *depths: int) -> None:
        """Move the items at the given depths to the top, one after another."""
        for depth in depths:
            if depth >= len(self.stack):
                raise ScriptError("stack underflow")
            self._push(self.stack.pop(-1 - depth))

    # --- Opcode Implementations ---

    def _op_verify(self) -> None:
        if not cast_to_bool(self._pop()):
            raise ScriptError("OP_VERIFY failed")

    def _op_return(self) -> None:
        raise ScriptError("OP_RETURN executed")

    def _op_toaltstack(self) -> None:
        self.altstack.append(self._pop())

    def _op_fromaltstack(self) -> None:
        if not self.altstack:
            raise ScriptError("altstack underflow")
        self._push(self.altstack.pop())

    def _op_2drop(self) -> None:
        self._pop()
        self._pop()

    def _op_ifdup(self) -> None:
        if cast_to_bool(self._peek(0)):
            self._copy(0)

    def _op_nip(self) -> None:
        top = self._pop()
        self._pop()
        self._push(top)

    def _op_pick(self) -> None:
        n = self._pop_num()
        if n < 0:
            raise ScriptError("OP_PICK with negative index")
        self._copy(n)

    def _op_roll(self) -> None:
        n = self._pop_num()
        if n < 0:
            raise ScriptError("OP_ROLL with negative index")
        self._move(n)

    def _op_tuck(self) -> None:
        top = self._pop()
        second = self._pop()
        self._push(top)
        self._push(second)
        self._push(top)

    def _op_cat(self) -> None:
        top = self._pop()
        second = self._pop()
        if len(second) + len(top) > self.limits.max_element_size:
            raise ScriptError("OP_CAT result exceeds element limit")
        self._push(second + top)

    def _op_equalverify(self) -> None:
        if self._pop() != self._pop():
            raise ScriptError("OP_EQUALVERIFY failed")

    def _op_numequalverify(self) -> None:
        b = self._pop_num()
        a = self._pop_num()
        if a != b:
            raise ScriptError("OP_NUMEQUALVERIFY failed")

    def _op_within(self) -> None:
        upper = self._pop_num()
        lower = self._pop_num()
        x = self._pop_num()
        self._push(_bool(lower <= x < upper))

    def _unary(self, fn: Callable[[int], int]) -> None:
        self._push_num(fn(self._pop_num()))

    def _binary(self, fn: Callable[[int, int], int]) -> None:
        b = self._pop_num()
        a = self._pop_num()
        self._push_num(fn(a, b))


# --- Convenience ---

def execute_script(
    body: Script,
    hasher: HashFunction = SHA256,
    limits: ExecutionLimits = DEFAULT_LIMITS,
) -> ExecutionResult:
    """Run body in a fresh interpreter."""
    result = Interpreter(hasher, limits).run(body)
    logger.debug(
        "executed %d bytes: success=%s, peak stack %d",
        len(body), result.success, result.max_stack_items,
    )
    return result
