"""Proof-of-work check on the channel state.

The prover finds a nonce such that H(state || nonce) starts with n_bits zero
bits. The verifier never trusts the zero prefix: it rebuilds

    ZeroRun(whole) || [msb] || suffix         whole = n_bits // 8, rem = n_bits % 8

from constants and prover hints and compares it with the hash. The msb byte
is only present when rem != 0 and must be below 2^(8 - rem). On success the
channel advances to H(state), the same rule as a squeeze.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from primitives.errors import PowMismatchError
from primitives.hash import DIGEST_SIZE, SHA256, HashFunction
from primitives.opcodes import Opcode
from primitives.script import Script, script

logger = logging.getLogger(__name__)

NONCE_SIZE = 8
MAX_POW_BITS = 8 * DIGEST_SIZE


# --- Configuration ---


@dataclass(frozen=True)
class PowConfig:
    """Proof-of-work difficulty.

    Attributes:
        n_bits: Required number of leading zero bits in H(state || nonce)
    """

    n_bits: int

    def __post_init__(self) -> None:
        if not 0 <= self.n_bits <= MAX_POW_BITS:
            raise ValueError(f"n_bits must be in [0, {MAX_POW_BITS}], got {self.n_bits}")

    @property
    def whole(self) -> int:
        """Number of leading bytes that must be zero."""
        return self.n_bits // 8

    @property
    def rem(self) -> int:
        """Leading zero bits required of the byte after the zero run."""
        return self.n_bits % 8

    @property
    def suffix_size(self) -> int:
        return DIGEST_SIZE - self.whole - (1 if self.rem else 0)

    @property
    def msb_bound(self) -> int:
        """Exclusive upper bound on the msb byte (only meaningful when rem != 0)."""
        return 1 << (8 - self.rem)


# --- Prover Helpers ---


def nonce_to_bytes(nonce: int) -> bytes:
    return nonce.to_bytes(NONCE_SIZE, "little")


def hash_with_nonce(state: bytes, nonce: bytes, hasher: HashFunction = SHA256) -> bytes:
    return hasher(state, nonce)


def leading_zero_bits(digest: bytes) -> int:
    """Count the leading zero bits of a digest, first byte first."""
    count = 0
    for byte in digest:
        if byte:
            return count + 8 - byte.bit_length()
        count += 8
    return count


def grind(
    state: bytes,
    n_bits: int,
    hasher: HashFunction = SHA256,
    start: int = 0,
    max_attempts: Optional[int] = None,
) -> bytes:
    """Search for a nonce meeting the difficulty.

    Nonces are 8-byte little-endian counters starting at `start`.

    Raises:
        ValueError: If max_attempts is exhausted.
    """
    PowConfig(n_bits)
    counter = start
    while max_attempts is None or counter - start < max_attempts:
        nonce = nonce_to_bytes(counter)
        if leading_zero_bits(hash_with_nonce(state, nonce, hasher)) >= n_bits:
            logger.debug("grind(%d bits): nonce %d", n_bits, counter)
            return nonce
        counter += 1
    raise ValueError(f"no nonce with {n_bits} leading zero bits in {max_attempts} attempts")


# --- Witness ---


@dataclass(frozen=True)
class PowWitness:
    """Prover hints that decompose H(state || nonce) after the zero run.

    Attributes:
        suffix: Hash bytes after the zero run (and after the msb byte, if any)
        msb: The byte after the zero run when n_bits is not byte aligned
    """

    suffix: bytes
    msb: Optional[int] = None

    @classmethod
    def create(
        cls, state: bytes, nonce: bytes, n_bits: int, hasher: HashFunction = SHA256
    ) -> "PowWitness":
        """Decompose the hash of (state, nonce) for the given difficulty.

        The witness is built from the hash as-is; it only verifies if the
        nonce actually meets the difficulty.
        """
        config = PowConfig(n_bits)
        digest = hash_with_nonce(state, nonce, hasher)
        if config.rem:
            return cls(suffix=digest[config.whole + 1:], msb=digest[config.whole])
        return cls(suffix=digest[config.whole:])

    def to_script(self, nonce: bytes) -> Script:
        """Push the hints in consumption order: nonce, suffix, msb."""
        return script(nonce, self.suffix, self.msb)


# --- Native Verifier ---


def verify_pow(
    state: bytes,
    nonce: bytes,
    n_bits: int,
    witness: PowWitness,
    hasher: HashFunction = SHA256,
) -> bytes:
    """Check the witness and return the advanced channel state.

    Raises:
        PowMismatchError: Witness shape, msb bound, or rebuilt hash mismatch.
    """
    config = PowConfig(n_bits)
    full_hash = hash_with_nonce(state, nonce, hasher)

    if len(witness.suffix) != config.suffix_size:
        raise PowMismatchError(
            f"suffix must be {config.suffix_size} bytes, got {len(witness.suffix)}"
        )

    prefix = bytes(config.whole)
    if config.rem:
        if witness.msb is None:
            raise PowMismatchError(f"msb byte required for n_bits={n_bits}")
        if not 0 <= witness.msb < config.msb_bound:
            raise PowMismatchError(f"msb {witness.msb} not below {config.msb_bound}")
        prefix += bytes([witness.msb])
    elif witness.msb is not None:
        raise PowMismatchError(f"unexpected msb byte for n_bits={n_bits}")

    if prefix + witness.suffix != full_hash:
        raise PowMismatchError("witness does not reproduce H(state || nonce)")
    return hasher(state)


# --- Gadget ---


class PowGadget:
    @staticmethod
    def verify_pow(n_bits: int, hasher: HashFunction = SHA256) -> Script:
        """Input: state. Output: H(state).

        Hints at the bottom of the stack: nonce, suffix, and msb (as a minimal
        number) when n_bits is not a multiple of 8.
        """
        config = PowConfig(n_bits)
        roll = (Opcode.OP_DEPTH, Opcode.OP_1SUB, Opcode.OP_ROLL)

        body = script(
            Opcode.OP_DUP, hasher.opcode, Opcode.OP_TOALTSTACK,
            roll, Opcode.OP_CAT, hasher.opcode,
            roll,
        )
        if config.rem:
            body += script(
                roll,
                Opcode.OP_DUP, 0, config.msb_bound, Opcode.OP_WITHIN, Opcode.OP_VERIFY,
                # Zero is pushed as the empty string; the hash byte is 0x00
                Opcode.OP_SIZE, Opcode.OP_NOT,
                Opcode.OP_IF, Opcode.OP_DROP, b"\x00", Opcode.OP_ENDIF,
                Opcode.OP_SWAP, Opcode.OP_CAT,
            )
        if config.whole:
            body += script(bytes(config.whole), Opcode.OP_SWAP, Opcode.OP_CAT)
        body += script(Opcode.OP_EQUALVERIFY, Opcode.OP_FROMALTSTACK)

        logger.debug("verify_pow(%d) gadget: %d bytes", n_bits, len(body))
        return body
