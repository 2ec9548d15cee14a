"""Binary Merkle tree over QM31 leaves and its path verifier.

Leaves are hashed with the QM31 commitment; an internal node is
H(left || right). A proof for leaf `index` lists one sibling per level, leaf
level first. Bit i of the index says whether the running node is the right
child at level i.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from primitives.errors import MerkleMismatchError
from primitives.field import QM31
from primitives.hash import SHA256, HashFunction
from primitives.opcodes import Opcode
from primitives.script import Script, script
from protocol.commit import CommitmentGadget, commit_qm31

logger = logging.getLogger(__name__)

# Indices are script numbers, so at most 31 bits
MAX_DEPTH = 31


# --- Configuration ---


@dataclass(frozen=True)
class MerkleConfig:
    """Merkle tree shape.

    Attributes:
        depth: Number of levels between a leaf and the root
    """

    depth: int

    def __post_init__(self) -> None:
        if not 1 <= self.depth <= MAX_DEPTH:
            raise ValueError(f"Merkle depth must be in [1, {MAX_DEPTH}], got {self.depth}")

    @property
    def n_leaves(self) -> int:
        return 1 << self.depth


# --- Proof ---


@dataclass(frozen=True)
class MerkleTreeProof:
    """Opening of one leaf.

    Attributes:
        leaf: The opened QM31 value
        siblings: Sibling digests, leaf level first
    """

    leaf: QM31
    siblings: List[bytes]

    @property
    def depth(self) -> int:
        return len(self.siblings)

    def siblings_script(self) -> Script:
        return script(list(self.siblings))

    def to_script(self) -> Script:
        """Push the hints in consumption order: leaf components, then siblings."""
        return script(self.leaf.to_m31_array(), self.siblings_script())


# --- Tree ---


class MerkleTree:
    """Prover-side tree with all levels materialized."""

    def __init__(self, leaves: Sequence[QM31], hasher: HashFunction = SHA256) -> None:
        n = len(leaves)
        if n < 2 or n & (n - 1):
            raise ValueError(f"leaf count must be a power of two and at least 2, got {n}")

        self.hasher = hasher
        self.leaves = list(leaves)
        self.config = MerkleConfig(n.bit_length() - 1)

        level = [bytes(commit_qm31(leaf, hasher)) for leaf in self.leaves]
        self.layers: List[List[bytes]] = [level]
        while len(level) > 1:
            level = [hasher(level[i], level[i + 1]) for i in range(0, len(level), 2)]
            self.layers.append(level)

    @property
    def depth(self) -> int:
        return self.config.depth

    @property
    def root(self) -> bytes:
        return self.layers[-1][0]

    def query(self, index: int) -> MerkleTreeProof:
        if not 0 <= index < len(self.leaves):
            raise ValueError(f"index {index} out of range for {len(self.leaves)} leaves")

        siblings = []
        pos = index
        for layer in self.layers[:-1]:
            siblings.append(layer[pos ^ 1])
            pos >>= 1
        return MerkleTreeProof(self.leaves[index], siblings)

    @staticmethod
    def verify(
        root: bytes,
        depth: int,
        proof: MerkleTreeProof,
        index: int,
        hasher: HashFunction = SHA256,
    ) -> bool:
        """Check an opening against a root.

        Raises:
            ValueError: If the proof has the wrong number of siblings for depth.
        """
        config = MerkleConfig(depth)
        if proof.depth != config.depth:
            raise ValueError(f"expected {config.depth} siblings, got {proof.depth}")
        leaf_hash = bytes(commit_qm31(proof.leaf, hasher))
        return verify_path(root, leaf_hash, index, proof.siblings, hasher)


# --- Native Verifier ---


def check_path(
    root: bytes,
    leaf_hash: bytes,
    index: int,
    siblings: Sequence[bytes],
    hasher: HashFunction = SHA256,
) -> None:
    """Recompute the root from a leaf digest and its siblings.

    Raises:
        MerkleMismatchError: The index does not fit in len(siblings) bits, or
            the recomputed root differs from root.
    """
    depth = len(siblings)
    MerkleConfig(depth)
    if not 0 <= index < (1 << depth):
        raise MerkleMismatchError(f"index {index} does not fit in {depth} bits")

    current = leaf_hash
    for i, sibling in enumerate(siblings):
        if (index >> i) & 1:
            current = hasher(sibling, current)
        else:
            current = hasher(current, sibling)

    if current != root:
        raise MerkleMismatchError(f"root mismatch at index {index}")


def verify_path(
    root: bytes,
    leaf_hash: bytes,
    index: int,
    siblings: Sequence[bytes],
    hasher: HashFunction = SHA256,
) -> bool:
    try:
        check_path(root, leaf_hash, index, siblings, hasher)
    except MerkleMismatchError as e:
        logger.warning("Merkle path rejected: %s", e)
        return False
    return True


# --- Gadget ---


def index_to_bits_gadget(n: int) -> Script:
    """Range-check the index on top of the stack and move its n bits to the altstack.

    Bit 0 ends up on top of the altstack.
    """
    MerkleConfig(n)
    if n == MAX_DEPTH:
        range_check = script(Opcode.OP_DUP, 0, Opcode.OP_GREATERTHANOREQUAL, Opcode.OP_VERIFY)
    else:
        range_check = script(Opcode.OP_DUP, 0, 1 << n, Opcode.OP_WITHIN, Opcode.OP_VERIFY)

    return script(
        range_check,
        [
            (
                Opcode.OP_DUP, 1 << i, Opcode.OP_GREATERTHANOREQUAL,
                Opcode.OP_DUP, Opcode.OP_TOALTSTACK,
                Opcode.OP_IF, 1 << i, Opcode.OP_SUB, Opcode.OP_ENDIF,
            )
            for i in range(n - 1, 0, -1)
        ],
        Opcode.OP_TOALTSTACK,
    )


class MerkleTreeGadget:
    """Merkle verification scripts. Siblings are hints at the bottom of the stack."""

    @staticmethod
    def _climb(depth: int, hasher: HashFunction) -> Script:
        # Input: root, leaf hash, index. Output: nothing.
        return script(
            index_to_bits_gadget(depth),
            [
                (
                    Opcode.OP_DEPTH, Opcode.OP_1SUB, Opcode.OP_ROLL,
                    Opcode.OP_FROMALTSTACK, Opcode.OP_IF, Opcode.OP_SWAP, Opcode.OP_ENDIF,
                    Opcode.OP_CAT, hasher.opcode,
                )
                for _ in range(depth)
            ],
            Opcode.OP_EQUALVERIFY,
        )

    @classmethod
    def verify_path(cls, depth: int, hasher: HashFunction = SHA256) -> Script:
        """Input: root, leaf hash, index. Output: nothing; aborts on mismatch."""
        body = cls._climb(depth, hasher)
        logger.debug("verify_path(%d) gadget: %d bytes", depth, len(body))
        return body

    @classmethod
    def query_and_verify(cls, depth: int, hasher: HashFunction = SHA256) -> Script:
        """Input: root, index. Output: the leaf components c0, c1, c2, c3.

        Hints at the bottom of the stack: c0, c1, c2, c3, then the siblings.
        """
        body = script(
            [(Opcode.OP_DEPTH, Opcode.OP_1SUB, Opcode.OP_ROLL) for _ in range(4)],
            # Keep a copy of the leaf on the altstack, c0 on top
            Opcode.OP_DUP, Opcode.OP_TOALTSTACK,
            Opcode.OP_OVER, Opcode.OP_TOALTSTACK,
            2, Opcode.OP_PICK, Opcode.OP_TOALTSTACK,
            3, Opcode.OP_PICK, Opcode.OP_TOALTSTACK,
            CommitmentGadget.commit_qm31(hasher),
            Opcode.OP_SWAP,
            cls._climb(depth, hasher),
            [Opcode.OP_FROMALTSTACK for _ in range(4)],
        )
        logger.debug("query_and_verify(%d) gadget: %d bytes", depth, len(body))
        return body
