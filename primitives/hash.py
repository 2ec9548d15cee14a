"""Injectable hash primitive.

Every native component and every gadget takes a HashFunction instead of
calling a global: the native side calls `digest`, the gadget side emits
`opcode`, and the interpreter binds `opcode` to `digest`. Tests can swap in a
different function without touching the gadgets.
"""

import hashlib
from dataclasses import dataclass
from typing import Callable

from primitives.opcodes import Opcode

DIGEST_SIZE = 32


@dataclass(frozen=True)
class HashFunction:
    """A 32-byte hash bound to the opcode that computes it on-machine."""

    name: str
    opcode: Opcode
    digest: Callable[[bytes], bytes]

    def __call__(self, *parts: bytes) -> bytes:
        """Hash the concatenation of parts."""
        return self.digest(b"".join(parts))


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


SHA256 = HashFunction(name="sha256", opcode=Opcode.OP_SHA256, digest=_sha256)
