"""Protocol - Verifier gadgets and their native counterparts."""

from protocol.channel import Channel, ChannelGadget
from protocol.commit import (
    Commitment,
    CommitmentGadget,
    commit_cm31,
    commit_m31,
    commit_m31s,
    commit_qm31,
)
from protocol.extract import (
    ExtractionHint,
    Extractor,
    ExtractorGadget,
    QueryBitOrder,
    trim_gadget,
    trim_m31,
)
from protocol.merkle import (
    MerkleConfig,
    MerkleTree,
    MerkleTreeGadget,
    MerkleTreeProof,
    check_path,
    index_to_bits_gadget,
    verify_path,
)
from protocol.pow import (
    PowConfig,
    PowGadget,
    PowWitness,
    grind,
    hash_with_nonce,
    leading_zero_bits,
    verify_pow,
)
from protocol.verifier import (
    QueryPhaseConfig,
    QueryPhaseGadget,
    QueryPhaseProof,
    prove_query_phase,
    run_query_phase,
    verify_query_phase,
)

__all__ = [
    # Commitment
    "Commitment",
    "CommitmentGadget",
    "commit_m31s",
    "commit_m31",
    "commit_cm31",
    "commit_qm31",
    # Extraction
    "ExtractionHint",
    "Extractor",
    "ExtractorGadget",
    "QueryBitOrder",
    "trim_m31",
    "trim_gadget",
    # Channel
    "Channel",
    "ChannelGadget",
    # Proof-of-work
    "PowConfig",
    "PowWitness",
    "PowGadget",
    "grind",
    "hash_with_nonce",
    "leading_zero_bits",
    "verify_pow",
    # Merkle
    "MerkleConfig",
    "MerkleTree",
    "MerkleTreeProof",
    "MerkleTreeGadget",
    "index_to_bits_gadget",
    "check_path",
    "verify_path",
    # Query phase
    "QueryPhaseConfig",
    "QueryPhaseProof",
    "QueryPhaseGadget",
    "prove_query_phase",
    "verify_query_phase",
    "run_query_phase",
]
