"""
BN254 base field (alt_bn128 F_p): minimal, pure-Python helpers.

This module provides a tiny `Fp` class with the arithmetic needed by the
hash-to-curve map and the point codecs: ring ops, inversion, square roots,
the quadratic-residue test and the RFC 9380 ``sgn0`` / ``inv0`` helpers.

It is **not** constant-time. Nothing secret-bearing runs through it on the
engine side: the engine only hashes public messages and decodes public points.

Notes:
- p ≡ 3 (mod 4), so square roots are a single exponentiation by (p + 1) / 4.
- 32-byte big-endian (de)serialization matches the wire format of the points.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ..constants import FIELD_ELEMENT_BYTES, FIELD_MODULUS
from ..errors import PointDecodeError

P: int = FIELD_MODULUS
_SQRT_EXP: int = (P + 1) // 4
_LEGENDRE_EXP: int = (P - 1) // 2


def _to_int(x: Union[int, "Fp"]) -> int:
    return x.n if isinstance(x, Fp) else int(x)


@dataclass(frozen=True)
class Fp:
    """
    Immutable element of F_p.

        a = Fp.from_int(5)
        b = a * a + 3
    """

    n: int  # canonical representative in [0, P)

    # --- Constructors -----------------------------------------------------

    @staticmethod
    def from_int(x: int) -> "Fp":
        return Fp(x % P)

    @staticmethod
    def from_bytes(b: bytes) -> "Fp":
        """Strict decode: exactly 32 bytes and canonical (< P)."""
        if len(b) != FIELD_ELEMENT_BYTES:
            raise PointDecodeError(
                "field element has wrong length",
                details={"expected": FIELD_ELEMENT_BYTES, "got": len(b)},
            )
        v = int.from_bytes(b, "big")
        if v >= P:
            raise PointDecodeError("field element overflows modulus")
        return Fp(v)

    # --- Serialization ----------------------------------------------------

    def to_bytes(self) -> bytes:
        return self.n.to_bytes(FIELD_ELEMENT_BYTES, "big")

    # --- Number protocol --------------------------------------------------

    def __int__(self) -> int:
        return self.n

    def __bool__(self) -> bool:
        return self.n != 0

    def __repr__(self) -> str:
        return f"Fp(0x{self.n:064x})"

    def __hash__(self) -> int:
        return hash(self.n)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, (int, Fp)):
            return False
        return self.n == _to_int(other) % P

    def __neg__(self) -> "Fp":
        return Fp(0 if self.n == 0 else P - self.n)

    def __add__(self, other: Union[int, "Fp"]) -> "Fp":
        return Fp((self.n + _to_int(other)) % P)

    def __radd__(self, other: Union[int, "Fp"]) -> "Fp":
        return self.__add__(other)

    def __sub__(self, other: Union[int, "Fp"]) -> "Fp":
        return Fp((self.n - _to_int(other)) % P)

    def __rsub__(self, other: Union[int, "Fp"]) -> "Fp":
        return Fp((_to_int(other) - self.n) % P)

    def __mul__(self, other: Union[int, "Fp"]) -> "Fp":
        return Fp((self.n * _to_int(other)) % P)

    def __rmul__(self, other: Union[int, "Fp"]) -> "Fp":
        return self.__mul__(other)

    def __pow__(self, exponent: int) -> "Fp":
        return Fp(pow(self.n, exponent, P))

    # --- Field-specific ops ----------------------------------------------

    def inv0(self) -> "Fp":
        """Inverse with inv0(0) == 0, as RFC 9380 defines it."""
        if self.n == 0:
            return Fp(0)
        return Fp(pow(self.n, P - 2, P))

    def is_square(self) -> bool:
        """True for quadratic residues and for zero."""
        return pow(self.n, _LEGENDRE_EXP, P) in (0, 1)

    def sqrt(self) -> Optional["Fp"]:
        """Return a square root, or None for a non-residue."""
        r = Fp(pow(self.n, _SQRT_EXP, P))
        if r * r != self:
            return None
        return r

    def sgn0(self) -> int:
        """Parity of the canonical representative."""
        return self.n & 1

    @staticmethod
    def zero() -> "Fp":
        return Fp(0)

    @staticmethod
    def one() -> "Fp":
        return Fp(1)


FP_ZERO = Fp.zero()
FP_ONE = Fp.one()

__all__ = ["P", "Fp", "FP_ZERO", "FP_ONE"]
