"""Tests for hint-checked extraction.

Every gadget run pushes the hint first (bottom of the stack), then the hash,
then the gadget; honest hints must accept with the native values on the
stack and any tampering must abort the script.
"""

from dataclasses import replace

import pytest

from primitives.errors import MalformedHintError, NonCanonicalEncodingError
from primitives.script import script
from primitives.script_num import NEGATIVE_ZERO, NEGATIVE_ZERO_WORD
from protocol.extract import (
    ExtractionHint,
    Extractor,
    ExtractorGadget,
    QueryBitOrder,
    trim_gadget,
    trim_m31,
)
from tests.conftest import random_digest, run_gadget

MAX_CANONICAL = (1 << 31) - 2


def _run_unpack(digest: bytes, hint: ExtractionHint, n: int, values):
    return run_gadget(
        hints=hint.to_script(),
        inputs=script(digest),
        gadget=ExtractorGadget.unpack(n),
        outputs=values,
    )


def _with_unit(hint: ExtractionHint, i: int, unit: bytes) -> ExtractionHint:
    units = list(hint.units)
    units[i] = unit
    return replace(hint, units=tuple(units))


# Hash whose first words exercise every reconstruction branch
EDGE_DIGEST = (
    b"\x00\x00\x00\x00"      # zero
    + NEGATIVE_ZERO_WORD     # sign bit only
    + b"\x05\x00\x00\x00"    # one-byte positive
    + b"\x05\x00\x00\x80"    # one-byte negative
    + b"\x80\x00\x00\x00"    # needs a padding byte
    + b"\x00\x00\x80\x00"    # four-byte unit
    + bytes(range(8))
)


class TestNativeExtract:
    def test_extract_then_unpack(self, rng) -> None:
        """Test that unpack accepts the hint extract produced, for every word count."""
        for n in range(1, 9):
            digest = random_digest(rng)
            values, hint = Extractor.extract(digest, n)
            assert hint.n_words == n
            assert len(hint.tail) == 32 - 4 * n
            assert Extractor.unpack(digest, hint, n) == values
            assert all(0 <= v <= MAX_CANONICAL for v in values)

    def test_values_follow_words(self) -> None:
        """Test the canonical values of the edge-case words."""
        values, hint = Extractor.extract(EDGE_DIGEST, 6)
        assert values == [0, 0, 4, 4, 127, 0x7FFFFF]
        assert hint.units[1] == NEGATIVE_ZERO

    def test_qm31(self, rng) -> None:
        """Test extraction of a QM31 element from the first four words."""
        digest = random_digest(rng)
        value, hint = Extractor.extract_qm31(digest)
        assert Extractor.unpack_qm31(digest, hint) == value
        assert len(hint.tail) == 16

    def test_5queries(self, rng) -> None:
        """Test that queries are the trimmed low bits of five values."""
        digest = random_digest(rng)
        queries, hint = Extractor.extract_5queries(digest, logn=10)
        raw = Extractor.unpack_5m31(digest, hint)
        assert queries == [v & 0x3FF for v in raw]
        assert Extractor.unpack_5queries(digest, hint, 10) == queries

    def test_deterministic(self, rng) -> None:
        digest = random_digest(rng)
        assert Extractor.extract(digest, 5) == Extractor.extract(digest, 5)

    def test_rejects_flipped_tail(self, rng) -> None:
        """Test that a flipped tail byte no longer rebuilds the hash."""
        digest = random_digest(rng)
        _, hint = Extractor.extract(digest, 4)
        tail = bytes([hint.tail[0] ^ 1]) + hint.tail[1:]
        with pytest.raises(MalformedHintError):
            Extractor.unpack(digest, replace(hint, tail=tail), 4)

    def test_rejects_wrong_tail_length(self, rng) -> None:
        """Test that tails one byte short or long are rejected."""
        digest = random_digest(rng)
        _, hint = Extractor.extract(digest, 4)
        with pytest.raises(MalformedHintError):
            Extractor.unpack(digest, replace(hint, tail=hint.tail[:-1]), 4)
        with pytest.raises(MalformedHintError):
            Extractor.unpack(digest, replace(hint, tail=hint.tail + b"\x00"), 4)

    def test_rejects_wrong_unit_count(self, rng) -> None:
        """Test that a hint for five words does not unpack four."""
        digest = random_digest(rng)
        _, hint = Extractor.extract(digest, 5)
        with pytest.raises(MalformedHintError):
            Extractor.unpack(digest, hint, 4)

    def test_rejects_non_minimal_unit(self) -> None:
        """Test that a padded unit is rejected as non-canonical."""
        _, hint = Extractor.extract(EDGE_DIGEST, 6)
        with pytest.raises(NonCanonicalEncodingError):
            Extractor.unpack(EDGE_DIGEST, _with_unit(hint, 2, b"\x05\x00"), 6)

    def test_rejects_other_unit(self) -> None:
        """Test that a minimal but different unit is rejected."""
        _, hint = Extractor.extract(EDGE_DIGEST, 6)
        with pytest.raises(MalformedHintError):
            Extractor.unpack(EDGE_DIGEST, _with_unit(hint, 2, b"\x06"), 6)

    def test_invalid_word_count(self, rng) -> None:
        """Test that word counts outside [1, 8] are rejected."""
        with pytest.raises(ValueError):
            Extractor.extract(random_digest(rng), 9)
        with pytest.raises(ValueError):
            Extractor.extract(random_digest(rng), 0)


class TestUnpackGadget:
    @pytest.mark.parametrize("n", [1, 2, 4, 5, 8])
    def test_honest_hint(self, rng, n: int) -> None:
        """Test that honest hints unpack to the native values."""
        digest = random_digest(rng)
        values, hint = Extractor.extract(digest, n)
        result = _run_unpack(digest, hint, n, values)
        assert result.success, result.error

    def test_edge_words(self) -> None:
        """Zero, negative zero, short units and full-width units all rebuild."""
        values, hint = Extractor.extract(EDGE_DIGEST, 6)
        result = _run_unpack(EDGE_DIGEST, hint, 6, values)
        assert result.success, result.error

    def test_named_forms(self, rng) -> None:
        """Test the named single-value and QM31 gadget forms."""
        digest = random_digest(rng)
        value, hint = Extractor.extract_qm31(digest)
        result = run_gadget(
            hints=hint.to_script(),
            inputs=script(digest),
            gadget=ExtractorGadget.unpack_qm31(),
            outputs=value.to_m31_array(),
        )
        assert result.success, result.error

        single, hint = Extractor.extract_m31(digest)
        result = run_gadget(
            hints=hint.to_script(),
            inputs=script(digest),
            gadget=ExtractorGadget.unpack_m31(),
            outputs=[single],
        )
        assert result.success, result.error
        assert single == value.to_m31_array()[0]

    def test_wrong_values_rejected(self, rng) -> None:
        """The output check itself is not vacuous."""
        digest = random_digest(rng)
        values, hint = Extractor.extract(digest, 4)
        result = _run_unpack(digest, hint, 4, list(reversed(values)))
        assert not result.success

    def test_flipped_tail_byte(self, rng) -> None:
        """Test that a flipped tail byte aborts the gadget."""
        digest = random_digest(rng)
        values, hint = Extractor.extract(digest, 4)
        tail = hint.tail[:-1] + bytes([hint.tail[-1] ^ 0x40])
        assert not _run_unpack(digest, replace(hint, tail=tail), 4, values).success

    def test_flipped_unit_byte(self, rng) -> None:
        """Test that a flipped unit byte aborts the gadget."""
        digest = random_digest(rng)
        values, hint = Extractor.extract(digest, 5)
        unit = hint.units[0]
        flipped = bytes([unit[0] ^ 1]) + unit[1:]
        assert not _run_unpack(digest, _with_unit(hint, 0, flipped), 5, values).success

    @pytest.mark.parametrize("unit", [b"\x05\x00", b"\x05\x00\x00", b"\x05\x00\x00\x00"])
    def test_non_minimal_unit(self, unit: bytes) -> None:
        """Test that padded units abort the gadget."""
        values, hint = Extractor.extract(EDGE_DIGEST, 6)
        assert not _run_unpack(EDGE_DIGEST, _with_unit(hint, 2, unit), 6, values).success

    def test_non_minimal_zero(self) -> None:
        """Zero has one valid unit, the empty string."""
        values, hint = Extractor.extract(EDGE_DIGEST, 6)
        assert not _run_unpack(EDGE_DIGEST, _with_unit(hint, 0, b"\x00"), 6, values).success

    def test_sign_swap(self) -> None:
        """A unit with the opposite sign rebuilds a different word."""
        values, hint = Extractor.extract(EDGE_DIGEST, 6)
        assert not _run_unpack(EDGE_DIGEST, _with_unit(hint, 2, b"\x85"), 6, values).success

    @pytest.mark.parametrize("delta", [-1, 1])
    def test_tail_length(self, rng, delta: int) -> None:
        """Test that a tail of the wrong length aborts the gadget."""
        digest = random_digest(rng)
        values, hint = Extractor.extract(digest, 4)
        tail = hint.tail[:-1] if delta < 0 else hint.tail + b"\x00"
        assert not _run_unpack(digest, replace(hint, tail=tail), 4, values).success


class TestTrimming:
    @pytest.mark.parametrize("order", list(QueryBitOrder))
    @pytest.mark.parametrize("logn", [1, 2, 5, 16, 30, 31])
    def test_gadget_matches_native(self, rng, order: QueryBitOrder, logn: int) -> None:
        """Test that the trim gadget matches trim_m31 for both orders."""
        samples = [0, 1, 2, (1 << logn) - 1, 1 << 30, MAX_CANONICAL]
        samples += [int(x) for x in rng.integers(0, MAX_CANONICAL, size=4, endpoint=True)]
        for value in samples:
            result = run_gadget(
                hints=script(),
                inputs=script(value),
                gadget=trim_gadget(logn, order),
                outputs=[trim_m31(value, logn, order)],
            )
            assert result.success, (value, result.error)

    def test_orders_differ(self) -> None:
        """Test that LOW keeps the low bits and HIGH the high bits."""
        value = 0b101 << 28 | 0b011
        assert trim_m31(value, 3, QueryBitOrder.LOW) == 0b011
        assert trim_m31(value, 3, QueryBitOrder.HIGH) == 0b101

    @pytest.mark.parametrize("logn", [0, 32, -1])
    def test_invalid_logn(self, logn: int) -> None:
        """Test that logn outside [1, 31] is rejected."""
        with pytest.raises(ValueError):
            trim_gadget(logn)
        with pytest.raises(ValueError):
            trim_m31(1, logn)

    @pytest.mark.parametrize("order", list(QueryBitOrder))
    def test_5queries_gadget(self, rng, order: QueryBitOrder) -> None:
        """Test the five-query gadget against native extraction."""
        digest = random_digest(rng)
        queries, hint = Extractor.extract_5queries(digest, 12, order)
        assert all(0 <= q < 1 << 12 for q in queries)
        result = run_gadget(
            hints=hint.to_script(),
            inputs=script(digest),
            gadget=ExtractorGadget.unpack_5queries(12, order),
            outputs=queries,
        )
        assert result.success, result.error
