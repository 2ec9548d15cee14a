"""Exceptions raised by the verifier gadgets and their off-machine checks.

Hierarchy
---------
VerificationError (ValueError)
 ├─ MalformedHintError        : hint shape or reconstructed bytes disagree with the hash
 ├─ NonCanonicalEncodingError : a number is not minimally encoded
 ├─ PowMismatchError          : proof-of-work prefix or msb bound failed
 └─ MerkleMismatchError       : recomputed root differs from the claimed root
ScriptError (Exception)       : the interpreter aborted a script

Construction-time parameter problems (bad depth, logn, n_bits, lengths) are
plain ValueError.
"""

from typing import Optional


class VerificationError(ValueError):
    """A fatal verification failure. There is no recovery path."""


class MalformedHintError(VerificationError):
    pass


class NonCanonicalEncodingError(VerificationError):
    pass


class PowMismatchError(VerificationError):
    pass


class MerkleMismatchError(VerificationError):
    pass


class ScriptError(Exception):
    """Script execution aborted.

    Attributes:
        position: Index of the failing item in the script body (None if the
                  failure happened in the final checks)
    """

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.position = position

    def __str__(self) -> str:
        if self.position is None:
            return self.message
        return f"{self.message} (at item {self.position})"
