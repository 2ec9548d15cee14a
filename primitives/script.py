"""Script construction and serialization.

A Script is a flat, immutable sequence of items. Each item is either an
Opcode or a data push (bytes). Gadgets are plain functions returning Scripts,
built with `script(...)`, which flattens nested scripts and converts ints to
minimal number pushes:

    script(
        Opcode.OP_DUP, Opcode.OP_SHA256, Opcode.OP_SWAP,
        b"\\x00", Opcode.OP_CAT, Opcode.OP_SHA256,
        [Opcode.OP_TOALTSTACK for _ in range(3)],
        1 << 20,
    )

Small-number opcodes (OP_0, OP_1NEGATE, OP_1..OP_16) are stored as the data
they push, so a serialize/parse round trip yields an identical Script.
"""

from typing import Iterable, Iterator, List, Tuple, Union

from primitives.opcodes import MAX_DIRECT_PUSH, SMALL_INT_OPCODES, Opcode
from primitives.script_num import encode_num

# --- Type Aliases ---

ScriptItem = Union[Opcode, bytes]

_SMALL_INT_VALUES = {op: bytes([n]) for n, op in SMALL_INT_OPCODES.items()}
_SMALL_INT_VALUES[Opcode.OP_0] = b""
_SMALL_INT_VALUES[Opcode.OP_1NEGATE] = b"\x81"


# --- Script ---

class Script:
    """Immutable sequence of opcodes and data pushes."""

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[ScriptItem] = ()) -> None:
        self._items: Tuple[ScriptItem, ...] = tuple(items)

    @property
    def items(self) -> Tuple[ScriptItem, ...]:
        return self._items

    def __iter__(self) -> Iterator[ScriptItem]:
        return iter(self._items)

    def __len__(self) -> int:
        """Serialized size in bytes."""
        return sum(_item_size(item) for item in self._items)

    def __add__(self, other: "Script") -> "Script":
        return Script(self._items + tuple(other))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Script):
            return NotImplemented
        return self._items == other._items

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"Script({len(self._items)} items, {len(self)} bytes)"

    def __str__(self) -> str:
        return " ".join(_item_str(item) for item in self._items)

    @property
    def n_items(self) -> int:
        return len(self._items)

    def to_bytes(self) -> bytes:
        """Serialize with minimal push encodings."""
        out = bytearray()
        for item in self._items:
            if isinstance(item, Opcode):
                out.append(item)
            else:
                out += _encode_push(item)
        return bytes(out)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Script":
        """Parse serialized bytes back into items.

        Raises:
            ValueError: On truncated pushes or unknown opcodes.
        """
        items: List[ScriptItem] = []
        pos = 0
        while pos < len(raw):
            code = raw[pos]
            pos += 1

            if 0x01 <= code <= MAX_DIRECT_PUSH:
                size = code
            elif code == Opcode.OP_PUSHDATA1:
                size, pos = _read_len(raw, pos, 1)
            elif code == Opcode.OP_PUSHDATA2:
                size, pos = _read_len(raw, pos, 2)
            elif code == Opcode.OP_PUSHDATA4:
                size, pos = _read_len(raw, pos, 4)
            else:
                try:
                    op = Opcode(code)
                except ValueError:
                    raise ValueError(f"unknown opcode 0x{code:02x} at byte {pos - 1}") from None
                items.append(_SMALL_INT_VALUES.get(op, op))
                continue

            if pos + size > len(raw):
                raise ValueError(f"push of {size} bytes runs past end of script")
            items.append(bytes(raw[pos:pos + size]))
            pos += size

        return cls(items)


# --- Builder ---

Buildable = Union[Script, Opcode, bytes, bytearray, int, Iterable, None]


def script(*parts: Buildable) -> Script:
    """Build a Script from opcodes, data, ints, nested scripts and iterables."""
    items: List[ScriptItem] = []
    _flatten(parts, items)
    return Script(items)


def _flatten(parts: Iterable[Buildable], out: List[ScriptItem]) -> None:
    for part in parts:
        if part is None:
            continue
        if isinstance(part, Opcode):
            out.append(_SMALL_INT_VALUES.get(part, part))
        elif isinstance(part, (bytes, bytearray)):
            out.append(bytes(part))
        elif isinstance(part, bool):
            raise TypeError("push bools as Opcode.OP_1 / Opcode.OP_0")
        elif isinstance(part, int):
            out.append(encode_num(part))
        elif isinstance(part, Script):
            out.extend(part.items)
        else:
            _flatten(part, out)


# --- Push Encoding ---

def _encode_push(data: bytes) -> bytes:
    size = len(data)
    if size == 0:
        return bytes([Opcode.OP_0])
    if size == 1 and 1 <= data[0] <= 16:
        return bytes([SMALL_INT_OPCODES[data[0]]])
    if data == b"\x81":
        return bytes([Opcode.OP_1NEGATE])
    if size <= MAX_DIRECT_PUSH:
        return bytes([size]) + data
    if size <= 0xFF:
        return bytes([Opcode.OP_PUSHDATA1, size]) + data
    if size <= 0xFFFF:
        return bytes([Opcode.OP_PUSHDATA2]) + size.to_bytes(2, "little") + data
    return bytes([Opcode.OP_PUSHDATA4]) + size.to_bytes(4, "little") + data


def _item_size(item: ScriptItem) -> int:
    if isinstance(item, Opcode):
        return 1
    return len(_encode_push(item))


def _read_len(raw: bytes, pos: int, width: int) -> Tuple[int, int]:
    if pos + width > len(raw):
        raise ValueError("truncated push length")
    return int.from_bytes(raw[pos:pos + width], "little"), pos + width


def _item_str(item: ScriptItem) -> str:
    if isinstance(item, Opcode):
        return item.name
    if not item:
        return "OP_0"
    if len(item) == 1 and 1 <= item[0] <= 16:
        return f"OP_{item[0]}"
    return f"<{item.hex()}>"
