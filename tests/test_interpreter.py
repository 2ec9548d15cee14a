"""Tests for the script interpreter."""

import pytest

from primitives.hash import SHA256, HashFunction
from primitives.interpreter import ExecutionLimits, Interpreter, cast_to_bool, execute_script
from primitives.opcodes import Opcode
from primitives.script import script


def _runs(*parts) -> bool:
    return execute_script(script(*parts)).success


class TestCastToBool:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (b"", False),
            (b"\x00", False),
            (b"\x00\x00", False),
            (b"\x80", False),
            (b"\x00\x80", False),
            (b"\x01", True),
            (b"\x80\x00", True),
            (b"\x00\x01", True),
        ],
    )
    def test_truthiness(self, value: bytes, expected: bool) -> None:
        """Test that zero and negative zero of any width are false."""
        assert cast_to_bool(value) is expected


class TestCleanStack:
    """Success means exactly one true item is left."""

    def test_single_true(self) -> None:
        assert _runs(Opcode.OP_1)

    def test_single_false(self) -> None:
        """Test that a single false item fails."""
        result = execute_script(script(Opcode.OP_0))
        assert not result.success
        assert "false" in result.error

    def test_two_items(self) -> None:
        """Test that leftover items fail the clean stack rule."""
        result = execute_script(script(Opcode.OP_1, Opcode.OP_1))
        assert not result.success
        assert result.final_stack == [b"\x01", b"\x01"]

    def test_empty(self) -> None:
        assert not _runs()


class TestArithmetic:
    @pytest.mark.parametrize(
        "a,b,op,expected",
        [
            (2, 3, Opcode.OP_ADD, 5),
            (2, 3, Opcode.OP_SUB, -1),
            (7, 7, Opcode.OP_NUMEQUAL, 1),
            (2, 3, Opcode.OP_LESSTHAN, 1),
            (3, 3, Opcode.OP_GREATERTHANOREQUAL, 1),
            (2, 3, Opcode.OP_MAX, 3),
            ((1 << 31) - 1, 1, Opcode.OP_ADD, 1 << 31),
        ],
    )
    def test_binary(self, a: int, b: int, op: Opcode, expected: int) -> None:
        """Test two-operand numeric opcodes."""
        assert _runs(a, b, op, expected, Opcode.OP_EQUAL)

    def test_results_may_exceed_operand_size(self) -> None:
        """A 5-byte result is fine on the stack but cannot be used as an operand."""
        overflow = script((1 << 31) - 1, 1, Opcode.OP_ADD)
        assert _runs(overflow, Opcode.OP_SIZE, 5, Opcode.OP_EQUALVERIFY, Opcode.OP_DROP, Opcode.OP_1)
        assert not _runs(overflow, Opcode.OP_1ADD, Opcode.OP_DROP, Opcode.OP_1)

    def test_non_minimal_operand_fails(self) -> None:
        """Test that a padded number operand aborts."""
        result = execute_script(script(b"\x01\x00", Opcode.OP_1ADD))
        assert not result.success
        assert "non-minimal" in result.error

    @pytest.mark.parametrize("x,expected", [(-1, False), (0, True), (9, True), (10, False)])
    def test_within(self, x: int, expected: bool) -> None:
        """Test that OP_WITHIN is min-inclusive and max-exclusive."""
        assert _runs(x, 0, 10, Opcode.OP_WITHIN) is expected

    def test_abs_and_not(self) -> None:
        assert _runs(-5, Opcode.OP_ABS, 5, Opcode.OP_NUMEQUAL)
        assert _runs(0, Opcode.OP_NOT)
        assert not _runs(3, Opcode.OP_NOT)


class TestStackOps:
    def test_roll_from_bottom(self) -> None:
        """OP_DEPTH OP_1SUB OP_ROLL brings the deepest item to the top."""
        assert _runs(
            b"a", b"b", b"c",
            Opcode.OP_DEPTH, Opcode.OP_1SUB, Opcode.OP_ROLL,
            b"a", Opcode.OP_EQUALVERIFY,
            b"c", Opcode.OP_EQUALVERIFY,
            b"b", Opcode.OP_EQUAL,
        )

    def test_pick_and_rot(self) -> None:
        assert _runs(
            1, 2, 3, 2, Opcode.OP_PICK, 1, Opcode.OP_EQUALVERIFY,
            Opcode.OP_ROT, 1, Opcode.OP_EQUALVERIFY,
            Opcode.OP_2DROP, Opcode.OP_1,
        )

    def test_altstack(self) -> None:
        """Test altstack moves and that popping an empty altstack fails."""
        assert _runs(7, Opcode.OP_TOALTSTACK, Opcode.OP_FROMALTSTACK, 7, Opcode.OP_EQUAL)
        assert not _runs(Opcode.OP_FROMALTSTACK)

    def test_cat_and_size(self) -> None:
        """Test that OP_CAT joins the top two items in order."""
        assert _runs(b"ab", b"cd", Opcode.OP_CAT, Opcode.OP_SIZE, 4, Opcode.OP_EQUALVERIFY,
                     b"abcd", Opcode.OP_EQUAL)

    def test_cat_element_limit(self) -> None:
        """Test that OP_CAT cannot build an item over 520 bytes."""
        assert not _runs(bytes(300), bytes(300), Opcode.OP_CAT, Opcode.OP_DROP, Opcode.OP_1)

    def test_underflow(self) -> None:
        """Test that popping an empty stack aborts."""
        result = execute_script(script(Opcode.OP_DROP))
        assert not result.success
        assert "underflow" in result.error


class TestFlowControl:
    def test_if_else(self) -> None:
        """Test that both branches of IF/ELSE run on the right argument."""
        assert _runs(1, Opcode.OP_IF, 2, Opcode.OP_ELSE, 3, Opcode.OP_ENDIF, 2, Opcode.OP_EQUAL)
        assert _runs(0, Opcode.OP_IF, 2, Opcode.OP_ELSE, 3, Opcode.OP_ENDIF, 3, Opcode.OP_EQUAL)

    def test_notif(self) -> None:
        assert _runs(0, Opcode.OP_NOTIF, 1, Opcode.OP_ENDIF)

    def test_nested_skipped_branch(self) -> None:
        """Conditionals inside a skipped branch are tracked but not evaluated."""
        assert _runs(
            0, Opcode.OP_IF,
            Opcode.OP_RETURN, Opcode.OP_IF, Opcode.OP_ENDIF,
            Opcode.OP_ENDIF,
            Opcode.OP_1,
        )

    def test_minimal_if(self) -> None:
        """IF arguments other than empty or 0x01 abort."""
        result = execute_script(script(2, Opcode.OP_IF, Opcode.OP_ENDIF, Opcode.OP_1))
        assert not result.success
        assert "minimal" in result.error

    def test_unbalanced(self) -> None:
        """Test that unbalanced conditionals abort."""
        assert not _runs(1, Opcode.OP_IF, Opcode.OP_1)
        assert not _runs(Opcode.OP_1, Opcode.OP_ENDIF)

    def test_verify(self) -> None:
        assert _runs(1, Opcode.OP_VERIFY, Opcode.OP_1)
        assert not _runs(0, Opcode.OP_VERIFY, Opcode.OP_1)

    def test_return(self) -> None:
        """Test that OP_RETURN aborts."""
        assert not _runs(Opcode.OP_1, Opcode.OP_RETURN)


class TestHashing:
    def test_sha256(self) -> None:
        assert _runs(b"abc", Opcode.OP_SHA256, SHA256(b"abc"), Opcode.OP_EQUAL)

    def test_injected_hash(self) -> None:
        """The hash opcode runs whatever digest function the hasher carries."""
        mock = HashFunction(name="mock", opcode=Opcode.OP_SHA256, digest=lambda data: data[::-1])
        body = script(b"abc", Opcode.OP_SHA256, b"cba", Opcode.OP_EQUAL)
        assert execute_script(body, mock).success
        assert not execute_script(body).success


class TestLimits:
    def test_stack_limit(self) -> None:
        """Test that a custom stack limit is enforced."""
        limits = ExecutionLimits(max_stack_items=10)
        body = script([Opcode.OP_1 for _ in range(11)], [Opcode.OP_DROP for _ in range(10)])
        assert not execute_script(body, limits=limits).success
        assert execute_script(body).success

    def test_push_limit(self) -> None:
        """Test that pushes over 520 bytes abort."""
        assert not _runs(bytes(521), Opcode.OP_DROP, Opcode.OP_1)

    def test_reports_peak_stack(self) -> None:
        """Test the peak stack and opcode counters."""
        result = Interpreter().run(script(1, 2, 3, Opcode.OP_2DROP))
        assert result.success
        assert result.max_stack_items == 3
        assert result.opcodes_executed == 4

    def test_error_position(self) -> None:
        """Test that the error names the failing item."""
        result = execute_script(script(Opcode.OP_1, Opcode.OP_1, Opcode.OP_EQUALVERIFY, Opcode.OP_DROP))
        assert not result.success
        assert "at item 3" in result.error
