"""Hint-checked extraction of field elements and query indices from a hash.

The machine cannot slice bytes, so the prover splits the hash for it: the
first n 4-byte words are hinted as script numbers and the remaining bytes are
hinted verbatim as a tail. The verifier rebuilds each word from its unit,
concatenates the words with the tail and compares the result against the
hash. Only then are the units used as values, each reduced from the raw
31-bit range to a canonical M31 value.

    hash = w1 || w2 || ... || wn || tail       (wi: 4 bytes)
    hint = (unit(w1), ..., unit(wn), tail)
    value_i = canonicalize(|unit(wi)|)

Query indices are the canonical values trimmed to logn bits. Two trimming
conventions are supported (see QueryBitOrder); pick one per protocol and use
it for every consumer of the indices.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from primitives.errors import MalformedHintError
from primitives.field import QM31
from primitives.hash import DIGEST_SIZE
from primitives.opcodes import Opcode
from primitives.script import Script, script
from primitives.script_num import (
    NEGATIVE_ZERO,
    NEGATIVE_ZERO_WORD,
    WORD_SIZE,
    canonicalize,
    decode_hint_unit,
    encode_hint_unit,
)

logger = logging.getLogger(__name__)

MAX_WORDS = DIGEST_SIZE // WORD_SIZE
N_QUERIES = 5
VALUE_BITS = 31


# --- Configuration ---


class QueryBitOrder(Enum):
    """Which logn bits of a canonical 31-bit value form a query index."""

    LOW = "low"    # v & (2^logn - 1)
    HIGH = "high"  # v >> (31 - logn)


def check_logn(logn: int) -> None:
    if not 1 <= logn <= VALUE_BITS:
        raise ValueError(f"logn must be in [1, {VALUE_BITS}], got {logn}")


def _check_n_words(n: int) -> None:
    if not 1 <= n <= MAX_WORDS:
        raise ValueError(f"word count must be in [1, {MAX_WORDS}], got {n}")


# --- Hint ---


@dataclass(frozen=True)
class ExtractionHint:
    """Prover-supplied decomposition of a hash.

    Attributes:
        units: One minimal script number per 4-byte word, in hash order
        tail: The bytes of the hash after the last word
    """

    units: Tuple[bytes, ...]
    tail: bytes

    @property
    def n_words(self) -> int:
        return len(self.units)

    def to_script(self) -> Script:
        """Push the hint in consumption order (units first, tail last)."""
        return script(list(self.units), self.tail)


# --- Native Extraction ---


class Extractor:
    """Prover-side hint construction and the matching off-machine check."""

    @staticmethod
    def extract(digest: bytes, n: int) -> Tuple[List[int], ExtractionHint]:
        """Split a hash into n canonical values and the hint that proves them."""
        _check_n_words(n)
        if len(digest) != DIGEST_SIZE:
            raise ValueError(f"hash must be {DIGEST_SIZE} bytes, got {len(digest)}")

        units = []
        values = []
        for i in range(n):
            word = digest[i * WORD_SIZE:(i + 1) * WORD_SIZE]
            unit = encode_hint_unit(word)
            _, raw = decode_hint_unit(unit)
            units.append(unit)
            values.append(canonicalize(raw))

        return values, ExtractionHint(tuple(units), digest[n * WORD_SIZE:])

    @staticmethod
    def unpack(digest: bytes, hint: ExtractionHint, n: int) -> List[int]:
        """Check a hint against a hash and return the canonical values.

        Raises:
            MalformedHintError: Wrong unit count, wrong tail length, or the
                rebuilt bytes differ from the hash.
            NonCanonicalEncodingError: A unit is not a minimal number.
        """
        _check_n_words(n)
        if hint.n_words != n:
            raise MalformedHintError(f"expected {n} hint units, got {hint.n_words}")
        if len(hint.tail) != DIGEST_SIZE - n * WORD_SIZE:
            raise MalformedHintError(
                f"tail must be {DIGEST_SIZE - n * WORD_SIZE} bytes, got {len(hint.tail)}"
            )

        words = []
        values = []
        for unit in hint.units:
            word, raw = decode_hint_unit(unit)
            words.append(word)
            values.append(canonicalize(raw))

        if b"".join(words) + hint.tail != digest:
            raise MalformedHintError("hint does not reproduce the hash")
        return values

    # --- Named Forms ---

    @classmethod
    def extract_m31(cls, digest: bytes) -> Tuple[int, ExtractionHint]:
        values, hint = cls.extract(digest, 1)
        return values[0], hint

    @classmethod
    def extract_cm31(cls, digest: bytes) -> Tuple[List[int], ExtractionHint]:
        return cls.extract(digest, 2)

    @classmethod
    def extract_qm31(cls, digest: bytes) -> Tuple[QM31, ExtractionHint]:
        values, hint = cls.extract(digest, 4)
        return QM31.from_m31_array(values), hint

    @classmethod
    def extract_5m31(cls, digest: bytes) -> Tuple[List[int], ExtractionHint]:
        return cls.extract(digest, N_QUERIES)

    @classmethod
    def extract_5queries(
        cls, digest: bytes, logn: int, order: QueryBitOrder = QueryBitOrder.LOW
    ) -> Tuple[List[int], ExtractionHint]:
        check_logn(logn)
        values, hint = cls.extract(digest, N_QUERIES)
        return [trim_m31(v, logn, order) for v in values], hint

    @classmethod
    def unpack_qm31(cls, digest: bytes, hint: ExtractionHint) -> QM31:
        return QM31.from_m31_array(cls.unpack(digest, hint, 4))

    @classmethod
    def unpack_5m31(cls, digest: bytes, hint: ExtractionHint) -> List[int]:
        return cls.unpack(digest, hint, N_QUERIES)

    @classmethod
    def unpack_5queries(
        cls,
        digest: bytes,
        hint: ExtractionHint,
        logn: int,
        order: QueryBitOrder = QueryBitOrder.LOW,
    ) -> List[int]:
        check_logn(logn)
        return [trim_m31(v, logn, order) for v in cls.unpack(digest, hint, N_QUERIES)]


# --- Query Trimming ---


def trim_m31(value: int, logn: int, order: QueryBitOrder = QueryBitOrder.LOW) -> int:
    """Reduce a canonical value to a logn-bit index."""
    check_logn(logn)
    if order is QueryBitOrder.LOW:
        return value & ((1 << logn) - 1)
    return value >> (VALUE_BITS - logn)


def trim_gadget(logn: int, order: QueryBitOrder = QueryBitOrder.LOW) -> Script:
    """Script replacing the value on top of the stack by its logn-bit index."""
    check_logn(logn)
    if logn == VALUE_BITS:
        return Script()
    if order is QueryBitOrder.LOW:
        return _trim_low(logn)
    return _trim_high(logn)


def _trim_low(logn: int) -> Script:
    # Stack 2^logn, 2^(logn+1), ..., 2^30 under the value, then subtract the
    # largest power that fits, from 2^30 down.
    return script(
        Opcode.OP_TOALTSTACK,
        1 << logn,
        [(Opcode.OP_DUP, Opcode.OP_DUP, Opcode.OP_ADD) for _ in range(VALUE_BITS - 1 - logn)],
        Opcode.OP_FROMALTSTACK,
        [
            (
                Opcode.OP_SWAP, Opcode.OP_2DUP, Opcode.OP_GREATERTHANOREQUAL,
                Opcode.OP_IF, Opcode.OP_SUB, Opcode.OP_ELSE, Opcode.OP_DROP, Opcode.OP_ENDIF,
            )
            for _ in range(VALUE_BITS - logn)
        ],
    )


def _trim_high(logn: int) -> Script:
    # Peel the top logn bits off the value into an accumulator below it.
    shift = VALUE_BITS - logn
    return script(
        Opcode.OP_0, Opcode.OP_SWAP,
        [
            (
                Opcode.OP_DUP, 1 << i, Opcode.OP_GREATERTHANOREQUAL,
                Opcode.OP_IF,
                1 << i, Opcode.OP_SUB, Opcode.OP_SWAP, 1 << (i - shift), Opcode.OP_ADD, Opcode.OP_SWAP,
                Opcode.OP_ENDIF,
            )
            for i in range(VALUE_BITS - 1, shift - 1, -1)
        ],
        Opcode.OP_DROP,
    )


# --- Gadget ---


def _roll_from_bottom() -> Script:
    return script(Opcode.OP_DEPTH, Opcode.OP_1SUB, Opcode.OP_ROLL)


class ExtractorGadget:
    """On-machine counterpart of Extractor.unpack.

    Input: the hash on top of the stack; the hint (n units, then the tail)
    pushed at the bottom of the stack before everything else.
    Output: n canonical values in place of the hash, first value deepest.
    """

    @staticmethod
    def reconstruct_word() -> Script:
        """Turn the unit on top into its 4-byte word and stash |value| on the altstack."""
        return script(
            Opcode.OP_DUP, NEGATIVE_ZERO, Opcode.OP_EQUAL,
            Opcode.OP_IF,
            Opcode.OP_DROP, b"", Opcode.OP_TOALTSTACK, NEGATIVE_ZERO_WORD,
            Opcode.OP_ELSE,
            Opcode.OP_DUP, Opcode.OP_ABS, Opcode.OP_DUP, Opcode.OP_TOALTSTACK,
            Opcode.OP_SIZE, WORD_SIZE, Opcode.OP_LESSTHAN,
            Opcode.OP_IF,
            # Sign flag: the unit equals its absolute value
            Opcode.OP_DUP, Opcode.OP_ROT, Opcode.OP_EQUAL, Opcode.OP_TOALTSTACK,
            Opcode.OP_SIZE, 2, Opcode.OP_LESSTHAN,
            Opcode.OP_IF, b"\x00\x00", Opcode.OP_CAT, Opcode.OP_ENDIF,
            Opcode.OP_SIZE, 3, Opcode.OP_LESSTHAN,
            Opcode.OP_IF, b"\x00", Opcode.OP_CAT, Opcode.OP_ENDIF,
            Opcode.OP_FROMALTSTACK,
            Opcode.OP_IF, b"\x00", Opcode.OP_ELSE, b"\x80", Opcode.OP_ENDIF,
            Opcode.OP_CAT,
            Opcode.OP_ELSE,
            Opcode.OP_DROP,
            Opcode.OP_ENDIF,
            Opcode.OP_ENDIF,
        )

    @staticmethod
    def reduce() -> Script:
        """Map the raw value on top of the stack to its canonical value."""
        return script(Opcode.OP_DUP, Opcode.OP_NOT, Opcode.OP_NOTIF, Opcode.OP_1SUB, Opcode.OP_ENDIF)

    @classmethod
    def unpack(cls, n: int) -> Script:
        _check_n_words(n)
        reconstruct = cls.reconstruct_word()
        reduce = cls.reduce()

        body = script(
            # Bring the n units and the tail up, tail on top
            [_roll_from_bottom() for _ in range(n + 1)],
            [(n, Opcode.OP_ROLL, reconstruct) for _ in range(n)],
            [Opcode.OP_CAT for _ in range(n - 1)],
            Opcode.OP_SWAP, Opcode.OP_CAT,
            Opcode.OP_EQUALVERIFY,
            [(Opcode.OP_FROMALTSTACK, reduce) for _ in range(n)],
            # Values came back last-first; reverse them
            [Opcode.OP_SWAP if i == 1 else (i, Opcode.OP_ROLL) for i in range(1, n)],
        )
        logger.debug("unpack(%d) gadget: %d bytes", n, len(body))
        return body

    @classmethod
    def unpack_m31(cls) -> Script:
        return cls.unpack(1)

    @classmethod
    def unpack_qm31(cls) -> Script:
        return cls.unpack(4)

    @classmethod
    def unpack_5m31(cls) -> Script:
        return cls.unpack(N_QUERIES)

    @classmethod
    def unpack_5queries(cls, logn: int, order: QueryBitOrder = QueryBitOrder.LOW) -> Script:
        """unpack_5m31 followed by trimming each value to logn bits."""
        trim = trim_gadget(logn, order)
        return script(
            cls.unpack_5m31(),
            [(trim, Opcode.OP_TOALTSTACK) for _ in range(N_QUERIES)],
            [Opcode.OP_FROMALTSTACK for _ in range(N_QUERIES)],
        )
