"""Nested-hash commitment to field elements.

A k-component element (c0, ..., c_{k-1}) commits to

    Hash(c0 || Hash(c1 || ... Hash(c_{k-1})))

over the minimal script-number encoding of each canonical component. The
nesting keeps the on-machine gadget to one hash per component with no
intermediate stack bookkeeping.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from primitives.field import CM31, QM31
from primitives.hash import DIGEST_SIZE, SHA256, HashFunction
from primitives.opcodes import Opcode
from primitives.script import Script, script
from primitives.script_num import encode_num

logger = logging.getLogger(__name__)


# --- Commitment ---


@dataclass(frozen=True)
class Commitment:
    """A 32-byte digest binding some prover data."""

    digest: bytes

    def __post_init__(self) -> None:
        if len(self.digest) != DIGEST_SIZE:
            raise ValueError(f"commitment must be {DIGEST_SIZE} bytes, got {len(self.digest)}")

    def __bytes__(self) -> bytes:
        return self.digest

    def hex(self) -> str:
        return self.digest.hex()


# --- Native Commit ---


def commit_m31s(components: Sequence[int], hasher: HashFunction = SHA256) -> Commitment:
    """Commit to canonical components, c0 outermost."""
    if not components:
        raise ValueError("cannot commit to an empty element")

    digest = hasher(encode_num(int(components[-1])))
    for component in reversed(components[:-1]):
        digest = hasher(encode_num(int(component)), digest)
    return Commitment(digest)


def commit_m31(value: int, hasher: HashFunction = SHA256) -> Commitment:
    return commit_m31s([value], hasher)


def commit_cm31(value: CM31, hasher: HashFunction = SHA256) -> Commitment:
    return commit_m31s(value.to_m31_array(), hasher)


def commit_qm31(value: QM31, hasher: HashFunction = SHA256) -> Commitment:
    return commit_m31s(value.to_m31_array(), hasher)


# --- Gadget ---


class CommitmentGadget:
    """Scripts that commit to elements already on the stack."""

    @staticmethod
    def commit(k: int, hasher: HashFunction = SHA256) -> Script:
        """Commit to k components on the stack (c0 deepest, c_{k-1} on top).

        Output: the commitment digest in place of the k components.
        """
        if k < 1:
            raise ValueError(f"component count must be at least 1, got {k}")
        body = script(
            hasher.opcode,
            [(Opcode.OP_CAT, hasher.opcode) for _ in range(k - 1)],
        )
        logger.debug("commit(%d) gadget: %d bytes", k, len(body))
        return body

    @classmethod
    def commit_m31(cls, hasher: HashFunction = SHA256) -> Script:
        return cls.commit(1, hasher)

    @classmethod
    def commit_cm31(cls, hasher: HashFunction = SHA256) -> Script:
        return cls.commit(2, hasher)

    @classmethod
    def commit_qm31(cls, hasher: HashFunction = SHA256) -> Script:
        return cls.commit(4, hasher)
