"""Primitives - Field elements, scripts, number codec, hashing and execution."""

from primitives.errors import (
    MalformedHintError,
    MerkleMismatchError,
    NonCanonicalEncodingError,
    PowMismatchError,
    ScriptError,
    VerificationError,
)
from primitives.field import (
    CM31,
    M31,
    P,
    QM31,
    R,
    random_m31s,
    random_qm31,
)
from primitives.hash import DIGEST_SIZE, SHA256, HashFunction
from primitives.interpreter import (
    DEFAULT_LIMITS,
    ExecutionLimits,
    ExecutionResult,
    Interpreter,
    cast_to_bool,
    execute_script,
)
from primitives.opcodes import Opcode
from primitives.script import Script, script
from primitives.script_num import (
    canonicalize,
    decode_hint_unit,
    decode_num,
    encode_hint_unit,
    encode_num,
    is_minimal,
)

__all__ = [
    # Errors
    "VerificationError",
    "MalformedHintError",
    "NonCanonicalEncodingError",
    "PowMismatchError",
    "MerkleMismatchError",
    "ScriptError",
    # Field
    "P",
    "M31",
    "CM31",
    "QM31",
    "R",
    "random_m31s",
    "random_qm31",
    # Hash
    "HashFunction",
    "SHA256",
    "DIGEST_SIZE",
    # Scripts
    "Opcode",
    "Script",
    "script",
    # Script numbers
    "encode_num",
    "decode_num",
    "is_minimal",
    "encode_hint_unit",
    "decode_hint_unit",
    "canonicalize",
    # Interpreter
    "ExecutionLimits",
    "ExecutionResult",
    "Interpreter",
    "DEFAULT_LIMITS",
    "cast_to_bool",
    "execute_script",
]
