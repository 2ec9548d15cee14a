"""
Pytest configuration and shared helpers for the gadget tests.

Gadgets are checked by running `hints || inputs || gadget || output check`
in the interpreter. The output check compares the gadget's results against
the expected values from the top of the stack down and leaves OP_TRUE, so an
honest run ends on a clean stack.
"""

import sys
from pathlib import Path
from typing import Sequence, Union

import numpy as np
import pytest

# Add the project directory to the path so absolute imports work
# (tests/ is inside the project, so parent is the project root)
project_dir = Path(__file__).parent.parent
if str(project_dir) not in sys.path:
    sys.path.insert(0, str(project_dir))

from primitives.hash import DIGEST_SIZE  # noqa: E402
from primitives.interpreter import ExecutionResult, execute_script  # noqa: E402
from primitives.opcodes import Opcode  # noqa: E402
from primitives.script import Script, script  # noqa: E402

SEED = 0x5EED

StackValue = Union[bytes, int]


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded generator so failures are reproducible."""
    return np.random.default_rng(SEED)


def random_digest(rng: np.random.Generator) -> bytes:
    return rng.bytes(DIGEST_SIZE)


def expect_stack(outputs: Sequence[StackValue]) -> Script:
    """Check the top len(outputs) items (last output on top) and leave OP_TRUE."""
    return script(
        [(value, Opcode.OP_EQUALVERIFY) for value in reversed(outputs)],
        Opcode.OP_1,
    )


def run_gadget(
    hints: Script,
    inputs: Script,
    gadget: Script,
    outputs: Sequence[StackValue],
) -> ExecutionResult:
    return execute_script(script(hints, inputs, gadget, expect_stack(outputs)))
