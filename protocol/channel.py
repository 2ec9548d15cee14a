"""Fiat-Shamir channel over 32-byte digests.

The state is exactly one digest. Transitions:

    absorb_commitment(c):  state := H(state || c)
    absorb_qm31(e):        state := H(state || Commit(e))
    squeeze:               digest := H(state || 0x00), state := H(state)

Squeezed values are extracted from `digest` with an ExtractionHint. The next
state never depends on the hint, only on the previous state.
"""

import logging
from typing import List, Sequence, Tuple, Union

from primitives.field import QM31
from primitives.hash import DIGEST_SIZE, SHA256, HashFunction
from primitives.opcodes import Opcode
from primitives.script import Script, script
from protocol.commit import Commitment, CommitmentGadget, commit_qm31
from protocol.extract import (
    ExtractionHint,
    Extractor,
    ExtractorGadget,
    QueryBitOrder,
    check_logn,
)

logger = logging.getLogger(__name__)

SQUEEZE_DOMAIN = b"\x00"


class Channel:
    """Mutable transcript holding the live channel state.

    Each verification run owns its own Channel; states are never shared.
    """

    def __init__(self, state: bytes, hasher: HashFunction = SHA256) -> None:
        if len(state) != DIGEST_SIZE:
            raise ValueError(f"channel state must be {DIGEST_SIZE} bytes, got {len(state)}")
        self.state = bytes(state)
        self.hasher = hasher

    # --- Absorb ---

    def absorb_commitment(self, commitment: Union[Commitment, bytes]) -> None:
        data = bytes(commitment)
        if len(data) != DIGEST_SIZE:
            raise ValueError(f"commitment must be {DIGEST_SIZE} bytes, got {len(data)}")
        self.state = self.hasher(self.state, data)

    def absorb_qm31(self, value: QM31) -> None:
        self.state = self.hasher(self.state, bytes(commit_qm31(value, self.hasher)))

    def absorb_qm31s(self, values: Sequence[QM31]) -> None:
        for value in values:
            self.absorb_qm31(value)

    # --- Squeeze ---

    def draw_digest(self) -> bytes:
        """Derive the squeeze digest and advance the state."""
        digest = self.hasher(self.state, SQUEEZE_DOMAIN)
        self.state = self.hasher(self.state)
        return digest

    def squeeze_qm31(self) -> Tuple[QM31, ExtractionHint]:
        """Prover side: draw a QM31 element and the hint that proves it."""
        return Extractor.extract_qm31(self.draw_digest())

    def squeeze_5queries(
        self, logn: int, order: QueryBitOrder = QueryBitOrder.LOW
    ) -> Tuple[List[int], ExtractionHint]:
        """Prover side: draw five logn-bit query indices and their hint."""
        check_logn(logn)
        return Extractor.extract_5queries(self.draw_digest(), logn, order)

    def squeeze_qm31_with_hint(self, hint: ExtractionHint) -> QM31:
        """Verifier side: draw a QM31 element, checking the prover's hint.

        Raises:
            MalformedHintError, NonCanonicalEncodingError: The hint does not
                match the squeeze digest.
        """
        return Extractor.unpack_qm31(self.draw_digest(), hint)

    def squeeze_5queries_with_hint(
        self, hint: ExtractionHint, logn: int, order: QueryBitOrder = QueryBitOrder.LOW
    ) -> List[int]:
        check_logn(logn)
        return Extractor.unpack_5queries(self.draw_digest(), hint, logn, order)


# --- Gadget ---


class ChannelGadget:
    """Channel transitions as scripts. The state sits on top of the stack."""

    @staticmethod
    def create_channel(digest: bytes) -> Script:
        if len(digest) != DIGEST_SIZE:
            raise ValueError(f"channel state must be {DIGEST_SIZE} bytes, got {len(digest)}")
        return script(digest)

    @staticmethod
    def absorb_commitment(hasher: HashFunction = SHA256) -> Script:
        """Input: state, commitment. Output: new state."""
        return script(Opcode.OP_CAT, hasher.opcode)

    @classmethod
    def absorb_qm31(cls, hasher: HashFunction = SHA256) -> Script:
        """Input: state, c0, c1, c2, c3. Output: new state."""
        return script(CommitmentGadget.commit_qm31(hasher), cls.absorb_commitment(hasher))

    @classmethod
    def absorb_qm31s(cls, n: int, hasher: HashFunction = SHA256) -> Script:
        """Input: state, then n elements of four components each (first element deepest)."""
        if n < 1:
            raise ValueError(f"element count must be at least 1, got {n}")
        body = script(
            [(CommitmentGadget.commit_qm31(hasher), Opcode.OP_TOALTSTACK) for _ in range(n)],
            [(Opcode.OP_FROMALTSTACK, cls.absorb_commitment(hasher)) for _ in range(n)],
        )
        logger.debug("absorb_qm31s(%d) gadget: %d bytes", n, len(body))
        return body

    @staticmethod
    def draw_digest(hasher: HashFunction = SHA256) -> Script:
        """Input: state. Output: new state, squeeze digest."""
        return script(
            Opcode.OP_DUP, hasher.opcode,
            Opcode.OP_SWAP, SQUEEZE_DOMAIN, Opcode.OP_CAT, hasher.opcode,
        )

    @classmethod
    def squeeze_qm31(cls, hasher: HashFunction = SHA256) -> Script:
        """Input: state. Output: new state, c0, c1, c2, c3.

        Hint: an ExtractionHint of 4 units, at the bottom of the stack.
        """
        return script(cls.draw_digest(hasher), ExtractorGadget.unpack_qm31())

    @classmethod
    def squeeze_5queries(
        cls,
        logn: int,
        order: QueryBitOrder = QueryBitOrder.LOW,
        hasher: HashFunction = SHA256,
    ) -> Script:
        """Input: state. Output: new state, q1, ..., q5.

        Hint: an ExtractionHint of 5 units, at the bottom of the stack.
        """
        body = script(cls.draw_digest(hasher), ExtractorGadget.unpack_5queries(logn, order))
        logger.debug("squeeze_5queries(logn=%d, %s) gadget: %d bytes", logn, order.value, len(body))
        return body
