"""Query-phase verification.

A compact end-to-end run of the Fiat-Shamir part of a STARK verifier, built
from the channel, proof-of-work and Merkle components:

1. Channel setup - Start from the public initial digest, absorb the trace root
2. Random coefficient - Squeeze alpha (QM31)
3. Claimed evaluation - Absorb the prover's claimed QM31 value
4. Proof-of-work - Check the nonce against the channel state
5. Query derivation - Squeeze five logn-bit query indices
6. Openings - Verify the committed tree at every query

The same run exists natively (verify_query_phase) and as one script
(QueryPhaseGadget.verify) that consumes QueryPhaseProof.to_script() as hints.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from primitives.errors import VerificationError
from primitives.field import QM31
from primitives.hash import DIGEST_SIZE, SHA256, HashFunction
from primitives.interpreter import ExecutionResult, execute_script
from primitives.opcodes import Opcode
from primitives.script import Script, script
from protocol.channel import Channel, ChannelGadget
from protocol.extract import N_QUERIES, ExtractionHint, QueryBitOrder, check_logn
from protocol.merkle import MerkleConfig, MerkleTree, MerkleTreeGadget, MerkleTreeProof
from protocol.pow import PowConfig, PowGadget, PowWitness, grind, verify_pow

logger = logging.getLogger(__name__)


# --- Configuration ---


@dataclass(frozen=True)
class QueryPhaseConfig:
    """Public parameters of a query-phase run.

    Attributes:
        initial_digest: Channel seed
        n_bits: Proof-of-work difficulty
        logn: Log2 of the number of committed leaves (tree depth and query width)
        bit_order: Trimming convention for query indices
    """

    initial_digest: bytes
    n_bits: int
    logn: int
    bit_order: QueryBitOrder = QueryBitOrder.LOW

    def __post_init__(self) -> None:
        if len(self.initial_digest) != DIGEST_SIZE:
            raise ValueError(
                f"initial digest must be {DIGEST_SIZE} bytes, got {len(self.initial_digest)}"
            )
        check_logn(self.logn)
        PowConfig(self.n_bits)
        MerkleConfig(self.logn)

    @property
    def n_queries(self) -> int:
        return N_QUERIES

    @property
    def n_leaves(self) -> int:
        return 1 << self.logn


# --- Proof ---


@dataclass(frozen=True)
class QueryPhaseProof:
    """Everything the prover sends for one query-phase run.

    Attributes:
        root: Merkle root of the committed leaves
        alpha_hint: Extraction hint for the alpha squeeze
        claimed: Claimed evaluation absorbed after alpha
        nonce: Proof-of-work nonce
        pow_witness: Decomposition of H(state || nonce)
        queries_hint: Extraction hint for the query squeeze
        openings: One Merkle opening per query, in query order
    """

    root: bytes
    alpha_hint: ExtractionHint
    claimed: QM31
    nonce: bytes
    pow_witness: PowWitness
    queries_hint: ExtractionHint
    openings: List[MerkleTreeProof]

    def to_script(self) -> Script:
        """Hints in the order QueryPhaseGadget consumes them.

        Openings are consumed from the last query to the first.
        """
        return script(
            self.root,
            self.alpha_hint.to_script(),
            self.claimed.to_m31_array(),
            self.pow_witness.to_script(self.nonce),
            self.queries_hint.to_script(),
            [opening.to_script() for opening in reversed(self.openings)],
        )


# --- Prover ---


def prove_query_phase(
    config: QueryPhaseConfig,
    leaves: Sequence[QM31],
    claimed: QM31,
    hasher: HashFunction = SHA256,
    max_attempts: Optional[int] = None,
) -> QueryPhaseProof:
    """Commit to leaves and answer the channel's challenges."""
    if len(leaves) != config.n_leaves:
        raise ValueError(f"expected {config.n_leaves} leaves, got {len(leaves)}")

    tree = MerkleTree(leaves, hasher)
    channel = Channel(config.initial_digest, hasher)
    channel.absorb_commitment(tree.root)

    _, alpha_hint = channel.squeeze_qm31()
    channel.absorb_qm31(claimed)

    nonce = grind(channel.state, config.n_bits, hasher, max_attempts=max_attempts)
    witness = PowWitness.create(channel.state, nonce, config.n_bits, hasher)
    channel.state = verify_pow(channel.state, nonce, config.n_bits, witness, hasher)

    queries, queries_hint = channel.squeeze_5queries(config.logn, config.bit_order)
    openings = [tree.query(q) for q in queries]

    return QueryPhaseProof(
        root=tree.root,
        alpha_hint=alpha_hint,
        claimed=claimed,
        nonce=nonce,
        pow_witness=witness,
        queries_hint=queries_hint,
        openings=openings,
    )


# --- Native Verifier ---


def verify_query_phase(
    config: QueryPhaseConfig,
    proof: QueryPhaseProof,
    hasher: HashFunction = SHA256,
) -> bool:
    """Verify a query-phase proof off-machine.

    Returns:
        True if every check passes, False otherwise
    """
    if len(proof.openings) != config.n_queries:
        logger.warning("expected %d openings, got %d", config.n_queries, len(proof.openings))
        return False

    channel = Channel(config.initial_digest, hasher)
    channel.absorb_commitment(proof.root)

    try:
        # --- Transcript and proof-of-work ---
        channel.squeeze_qm31_with_hint(proof.alpha_hint)
        channel.absorb_qm31(proof.claimed)
        channel.state = verify_pow(
            channel.state, proof.nonce, config.n_bits, proof.pow_witness, hasher
        )
        queries = channel.squeeze_5queries_with_hint(
            proof.queries_hint, config.logn, config.bit_order
        )
    except VerificationError as e:
        logger.warning("transcript verification failed: %s", e)
        return False

    # --- Openings ---
    for i, (query, opening) in enumerate(zip(queries, proof.openings)):
        if opening.depth != config.logn:
            logger.warning("opening %d has %d siblings, expected %d", i, opening.depth, config.logn)
            return False
        if not MerkleTree.verify(proof.root, config.logn, opening, query, hasher):
            logger.warning("Merkle opening %d (query %d) failed", i, query)
            return False

    return True


def final_channel_state(
    config: QueryPhaseConfig, proof: QueryPhaseProof, hasher: HashFunction = SHA256
) -> bytes:
    """Channel state after an honest run over proof, as the script leaves it."""
    channel = Channel(config.initial_digest, hasher)
    channel.absorb_commitment(proof.root)
    channel.draw_digest()
    channel.absorb_qm31(proof.claimed)
    channel.state = hasher(channel.state)
    channel.draw_digest()
    return channel.state


# --- Gadget ---


class QueryPhaseGadget:
    @staticmethod
    def verify(config: QueryPhaseConfig, hasher: HashFunction = SHA256) -> Script:
        """Script for the whole query phase.

        Hints: QueryPhaseProof.to_script(). Output: the final channel state.
        """
        roll = (Opcode.OP_DEPTH, Opcode.OP_1SUB, Opcode.OP_ROLL)
        open_query = script(
            # Root from the altstack, keeping a copy there
            Opcode.OP_FROMALTSTACK, Opcode.OP_DUP, Opcode.OP_TOALTSTACK, Opcode.OP_SWAP,
            MerkleTreeGadget.query_and_verify(config.logn, hasher),
            Opcode.OP_2DROP, Opcode.OP_2DROP,
        )

        body = script(
            ChannelGadget.create_channel(config.initial_digest),
            roll, Opcode.OP_DUP, Opcode.OP_TOALTSTACK,
            ChannelGadget.absorb_commitment(hasher),
            ChannelGadget.squeeze_qm31(hasher),
            Opcode.OP_2DROP, Opcode.OP_2DROP,
            [roll for _ in range(4)],
            ChannelGadget.absorb_qm31(hasher),
            PowGadget.verify_pow(config.n_bits, hasher),
            ChannelGadget.squeeze_5queries(config.logn, config.bit_order, hasher),
            [open_query for _ in range(config.n_queries)],
            Opcode.OP_FROMALTSTACK, Opcode.OP_DROP,
        )
        logger.debug(
            "query phase gadget (logn=%d, n_bits=%d): %d bytes", config.logn, config.n_bits, len(body)
        )
        return body


def run_query_phase(
    config: QueryPhaseConfig,
    proof: QueryPhaseProof,
    hasher: HashFunction = SHA256,
) -> ExecutionResult:
    """Execute hints followed by the query-phase script."""
    result = execute_script(proof.to_script() + QueryPhaseGadget.verify(config, hasher), hasher)
    if not result.success:
        logger.warning("query phase script failed: %s", result.error)
    return result
