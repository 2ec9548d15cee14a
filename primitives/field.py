"""Mersenne-31 field GF(p) and its degree-2 / degree-4 extensions.

Uses galois for base-field arithmetic. CM31 and QM31 are thin tower wrappers:

    CM31 = M31[i] / (i^2 + 1)
    QM31 = CM31[u] / (u^2 - R),  R = 1 + 2i

Canonical components are plain ints in [0, P-1]; that is the form that gets
committed, pushed onto the stack and compared.
"""

from dataclasses import dataclass
from typing import List

import galois
import numpy as np

# --- Field Construction ---

P = (1 << 31) - 1

M31 = galois.GF(P)
"""Base field GF(2^31 - 1)."""


def _m31(value: int) -> M31:
    return M31(int(value) % P)


# --- Extension Fields ---

@dataclass(frozen=True)
class CM31:
    """Complex extension element a + b*i."""

    a: int = 0
    b: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "a", int(self.a) % P)
        object.__setattr__(self, "b", int(self.b) % P)

    @classmethod
    def zero(cls) -> "CM31":
        return cls(0, 0)

    @classmethod
    def one(cls) -> "CM31":
        return cls(1, 0)

    def __add__(self, other: "CM31") -> "CM31":
        return CM31(int(_m31(self.a) + _m31(other.a)), int(_m31(self.b) + _m31(other.b)))

    def __sub__(self, other: "CM31") -> "CM31":
        return CM31(int(_m31(self.a) - _m31(other.a)), int(_m31(self.b) - _m31(other.b)))

    def __neg__(self) -> "CM31":
        return CM31(int(-_m31(self.a)), int(-_m31(self.b)))

    def __mul__(self, other: "CM31") -> "CM31":
        # (a + bi)(c + di) = (ac - bd) + (ad + bc)i
        a, b = _m31(self.a), _m31(self.b)
        c, d = _m31(other.a), _m31(other.b)
        return CM31(int(a * c - b * d), int(a * d + b * c))

    def to_m31_array(self) -> List[int]:
        return [self.a, self.b]


R = CM31(1, 2)


@dataclass(frozen=True)
class QM31:
    """Quartic extension element c0 + c1*u over CM31."""

    c0: CM31 = CM31()
    c1: CM31 = CM31()

    @classmethod
    def zero(cls) -> "QM31":
        return cls(CM31.zero(), CM31.zero())

    @classmethod
    def one(cls) -> "QM31":
        return cls(CM31.one(), CM31.zero())

    @classmethod
    def from_m31(cls, a: int, b: int, c: int, d: int) -> "QM31":
        return cls(CM31(a, b), CM31(c, d))

    @classmethod
    def from_m31_array(cls, values: List[int]) -> "QM31":
        if len(values) != 4:
            raise ValueError(f"QM31 needs 4 components, got {len(values)}")
        return cls.from_m31(*values)

    def __add__(self, other: "QM31") -> "QM31":
        return QM31(self.c0 + other.c0, self.c1 + other.c1)

    def __sub__(self, other: "QM31") -> "QM31":
        return QM31(self.c0 - other.c0, self.c1 - other.c1)

    def __neg__(self) -> "QM31":
        return QM31(-self.c0, -self.c1)

    def __mul__(self, other: "QM31") -> "QM31":
        # (a + bu)(c + du) = (ac + R*bd) + (ad + bc)u
        return QM31(
            self.c0 * other.c0 + R * self.c1 * other.c1,
            self.c0 * other.c1 + self.c1 * other.c0,
        )

    def to_m31_array(self) -> List[int]:
        """Canonical components [a, b, c, d] in ascending tower order."""
        return self.c0.to_m31_array() + self.c1.to_m31_array()

    def __repr__(self) -> str:
        return f"QM31({self.c0.a}, {self.c0.b}, {self.c1.a}, {self.c1.b})"


# --- Sampling ---

def random_m31s(rng: np.random.Generator, n: int) -> List[int]:
    """Draw n uniformly random canonical M31 values."""
    return [int(x) for x in M31.Random(n, seed=rng)]


def random_qm31(rng: np.random.Generator) -> QM31:
    """Draw a uniformly random QM31 element."""
    return QM31.from_m31_array(random_m31s(rng, 4))
