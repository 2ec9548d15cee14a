"""Canonical script-number codec and the 4-byte hint-unit convention.

Numbers on the stack are little-endian sign-magnitude byte strings: the
most-significant byte comes last and carries the sign in its top bit. The
encoding is minimal: zero is the empty string, and an extra 0x00 / 0x80 byte
is appended only when the magnitude's top byte already uses bit 7.

Hash bytes are cut into 4-byte little-endian words. The prover hints each word
as a script number whose magnitude is the low 31 bits of the word and whose
sign is the word's top bit; the verifier pads the number back to 4 bytes and
compares. The word 00 00 00 80 ("negative zero") is hinted by the single byte
0x80, which is its only representation.
"""

from typing import Tuple

from primitives.errors import NonCanonicalEncodingError

# --- Constants ---

MAX_NUM_SIZE = 4
WORD_SIZE = 4
RAW_MASK = 0x7FFFFFFF
NEGATIVE_ZERO = b"\x80"
NEGATIVE_ZERO_WORD = b"\x00\x00\x00\x80"


# --- Script Numbers ---

def encode_num(value: int) -> bytes:
    """Minimal encoding of a signed integer."""
    if value == 0:
        return b""

    negative = value < 0
    magnitude = abs(value)

    out = bytearray()
    while magnitude:
        out.append(magnitude & 0xFF)
        magnitude >>= 8

    if out[-1] & 0x80:
        out.append(0x80 if negative else 0x00)
    elif negative:
        out[-1] |= 0x80

    return bytes(out)


def is_minimal(data: bytes) -> bool:
    """True if data is the minimal encoding of the number it represents."""
    if not data:
        return True
    # Top byte without the sign bit is zero: only allowed if the byte below
    # needs its top bit for magnitude. This also rejects 0x80 (negative zero).
    if data[-1] & 0x7F == 0:
        if len(data) <= 1 or data[-2] & 0x80 == 0:
            return False
    return True


def decode_num(data: bytes, max_size: int = MAX_NUM_SIZE) -> int:
    """Decode a minimally encoded number of at most max_size bytes.

    Raises:
        NonCanonicalEncodingError: If data is too long or not minimal.
    """
    if len(data) > max_size:
        raise NonCanonicalEncodingError(
            f"number is {len(data)} bytes, at most {max_size} allowed"
        )
    if not is_minimal(data):
        raise NonCanonicalEncodingError(f"non-minimally encoded number: {data.hex()}")
    if not data:
        return 0

    result = int.from_bytes(data, "little")
    if data[-1] & 0x80:
        return -(result & ~(0x80 << (8 * (len(data) - 1))))
    return result


# --- Hint Units ---

def encode_hint_unit(word: bytes) -> bytes:
    """Prover side: the hint that reconstructs a 4-byte word."""
    if len(word) != WORD_SIZE:
        raise ValueError(f"word must be {WORD_SIZE} bytes, got {len(word)}")

    raw = int.from_bytes(word, "little") & RAW_MASK
    negative = bool(word[3] & 0x80)
    if negative and raw == 0:
        return NEGATIVE_ZERO
    return encode_num(-raw if negative else raw)


def decode_hint_unit(unit: bytes) -> Tuple[bytes, int]:
    """Verifier side: rebuild the 4-byte word a hint stands for.

    Returns:
        (word, raw) where raw is the magnitude in [0, 2^31 - 1]

    Raises:
        NonCanonicalEncodingError: If the unit is not a minimal number of at
            most 4 bytes (the negative-zero byte excepted).
    """
    if unit == NEGATIVE_ZERO:
        return NEGATIVE_ZERO_WORD, 0

    value = decode_num(unit)
    raw = abs(value)
    if len(unit) == WORD_SIZE:
        return unit, raw

    # Pad the magnitude to 3 bytes, then add the sign byte
    word = encode_num(raw).ljust(WORD_SIZE - 1, b"\x00")
    word += b"\x00" if value >= 0 else b"\x80"
    return word, raw


def canonicalize(raw: int) -> int:
    """Map a raw value in [0, 2^31 - 1] to [0, 2^31 - 2] (nonzero values minus one)."""
    return raw - 1 if raw != 0 else 0
