"""
threshold_randomness.crypto.bn254
=================================

BN254 (alt_bn128) curve operations for BLS signatures with signatures on G1
and public keys on G2.

- Pairing backend: ``py_ecc.optimized_bn128`` (pure Python, deterministic).
- Hash to G1: RFC 9380 ``hash_to_curve`` with expand_message_xmd/Keccak-256
  and the Shallue-van de Woestijne map (Z = 1).
- Wire format: fixed-width, big-endian affine coordinates.

Public API
----------
- map_to_g1(u) -> (x, y)
- hash_to_g1(dst, message) -> G1Point
- marshal_g1(P) / unmarshal_g1(b)       (64 bytes, x || y)
- marshal_g2(Q) / unmarshal_g2(b)       (128 bytes, x.im || x.re || y.im || y.re)
- check_pairing_product(pairs) -> bool
- g1_generator(), g2_generator(), curve_order()

Notes
-----
- Point ordering follows e(P, Q) with P in G1, Q in G2. The underlying
  ``py_ecc`` pairing call expects (Q, P); this wrapper handles it.
- Decoders validate length, field range, curve membership and, for G2, the
  prime-order subgroup. The point at infinity is encoded as all-zero bytes.
"""

from __future__ import annotations

from typing import Any, Iterable, Tuple

from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    FQ12,
    G1 as _G1,
    G2 as _G2,
    Z1 as _Z1,
    Z2 as _Z2,
    add,
    b as _B,
    b2 as _B2,
    is_inf,
    is_on_curve,
    multiply,
    neg,
    normalize,
    pairing as _pairing,
)

from ..constants import (
    CURVE_B,
    CURVE_ORDER,
    FIELD_ELEMENT_BYTES,
    G1_POINT_BYTES,
    G2_POINT_BYTES,
    SVDW_C1,
    SVDW_C2,
    SVDW_C3,
    SVDW_C4,
    SVDW_Z,
)
from ..errors import PointDecodeError
from .field import Fp
from .hash import hash_to_field

# Opaque projective tuples understood by py_ecc.
G1Point = Any
G2Point = Any
GTElement = FQ12

__all__ = [
    "G1Point",
    "G2Point",
    "map_to_g1",
    "hash_to_g1",
    "marshal_g1",
    "unmarshal_g1",
    "marshal_g2",
    "unmarshal_g2",
    "pair",
    "check_pairing_product",
    "g1_generator",
    "g2_generator",
    "g1_mul",
    "g2_mul",
    "g1_neg",
    "g2_neg",
    "curve_order",
]

_C1 = Fp(SVDW_C1)
_C2 = Fp(SVDW_C2)
_C3 = Fp(SVDW_C3)
_C4 = Fp(SVDW_C4)
_Z = Fp(SVDW_Z)


def curve_order() -> int:
    """Return the BN254 subgroup order r."""
    return CURVE_ORDER


def g1_generator() -> G1Point:
    return _G1


def g2_generator() -> G2Point:
    return _G2


def g1_mul(P: G1Point, k: int) -> G1Point:
    return multiply(P, k % CURVE_ORDER)


def g2_mul(Q: G2Point, k: int) -> G2Point:
    return multiply(Q, k % CURVE_ORDER)


def g1_neg(P: G1Point) -> G1Point:
    return neg(P)


def g2_neg(Q: G2Point) -> G2Point:
    return neg(Q)


# -------------------------
# Hash to curve
# -------------------------

def _g(x: Fp) -> Fp:
    # A = 0 for BN254
    return x * x * x + CURVE_B


def map_to_g1(u: int) -> Tuple[int, int]:
    """
    Shallue-van de Woestijne map F_p -> E(F_p), straight-line variant of
    RFC 9380 F.1 with the constants in ``threshold_randomness.constants``.
    """
    u_f = Fp.from_int(u)
    tv1 = u_f * u_f * _C1
    tv2 = 1 + tv1
    tv1 = 1 - tv1
    tv3 = (tv1 * tv2).inv0()
    tv4 = u_f * tv1 * tv3 * _C3

    x1 = _C2 - tv4
    e1 = _g(x1).is_square()
    x2 = _C2 + tv4
    e2 = _g(x2).is_square() and not e1
    x3 = tv2 * tv2 * tv3
    x3 = x3 * x3 * _C4 + _Z

    if e1:
        x = x1
    elif e2:
        x = x2
    else:
        x = x3

    y = _g(x).sqrt()
    if y is None:  # pragma: no cover - unreachable for a correct map
        raise ArithmeticError("SvdW map produced a non-square")
    if u_f.sgn0() != y.sgn0():
        y = -y
    return x.n, y.n


def _g1_from_affine(x: int, y: int) -> G1Point:
    return (FQ(x), FQ(y), FQ.one())


def hash_to_g1(dst: bytes, message: bytes) -> G1Point:
    """
    Deterministically hash ``message`` onto G1 under domain tag ``dst``.

    Distinct tags give unrelated points for the same message, so a signature
    produced for one application cannot be replayed in another.
    """
    u0, u1 = hash_to_field(message, dst, 2)
    q0 = _g1_from_affine(*map_to_g1(u0))
    q1 = _g1_from_affine(*map_to_g1(u1))
    # G1 has cofactor 1; no clearing needed.
    return add(q0, q1)


# -------------------------
# Encodings
# -------------------------

def _split_words(b: bytes, n: int) -> Tuple[bytes, ...]:
    return tuple(b[i * FIELD_ELEMENT_BYTES:(i + 1) * FIELD_ELEMENT_BYTES] for i in range(n))


def marshal_g1(P: G1Point) -> bytes:
    """Encode a G1 point as 64 bytes (x || y); infinity encodes as zeros."""
    if is_inf(P):
        return bytes(G1_POINT_BYTES)
    x, y = normalize(P)
    return Fp(int(x.n)).to_bytes() + Fp(int(y.n)).to_bytes()


def unmarshal_g1(data: bytes, *, allow_infinity: bool = False) -> G1Point:
    """Decode 64 bytes into a validated G1 point."""
    if len(data) != G1_POINT_BYTES:
        raise PointDecodeError("G1 encoding has wrong length", details={"expected": G1_POINT_BYTES, "got": len(data)})
    xb, yb = _split_words(bytes(data), 2)
    x, y = Fp.from_bytes(xb), Fp.from_bytes(yb)
    if x.n == 0 and y.n == 0:
        if not allow_infinity:
            raise PointDecodeError("G1 point at infinity not allowed")
        return _Z1
    P = _g1_from_affine(x.n, y.n)
    if not is_on_curve(P, _B):
        raise PointDecodeError("G1 point not on curve")
    return P


def marshal_g2(Q: G2Point) -> bytes:
    """Encode a G2 point as 128 bytes (x.im || x.re || y.im || y.re)."""
    if is_inf(Q):
        return bytes(G2_POINT_BYTES)
    x, y = normalize(Q)
    x_re, x_im = (int(c.n) if hasattr(c, "n") else int(c) for c in x.coeffs)
    y_re, y_im = (int(c.n) if hasattr(c, "n") else int(c) for c in y.coeffs)
    return b"".join(Fp(v).to_bytes() for v in (x_im, x_re, y_im, y_re))


def unmarshal_g2(data: bytes, *, allow_infinity: bool = False) -> G2Point:
    """Decode 128 bytes into a G2 point on the curve and in the r-torsion subgroup."""
    if len(data) != G2_POINT_BYTES:
        raise PointDecodeError("G2 encoding has wrong length", details={"expected": G2_POINT_BYTES, "got": len(data)})
    x_im, x_re, y_im, y_re = (Fp.from_bytes(w) for w in _split_words(bytes(data), 4))
    if not any((x_im.n, x_re.n, y_im.n, y_re.n)):
        if not allow_infinity:
            raise PointDecodeError("G2 point at infinity not allowed")
        return _Z2
    Q = (FQ2([x_re.n, x_im.n]), FQ2([y_re.n, y_im.n]), FQ2.one())
    if not is_on_curve(Q, _B2):
        raise PointDecodeError("G2 point not on curve")
    if not is_inf(multiply(Q, CURVE_ORDER)):
        raise PointDecodeError("G2 point not in prime-order subgroup")
    return Q


# -------------------------
# Pairing
# -------------------------

def pair(P: G1Point, Q: G2Point) -> GTElement:
    """Compute e(P, Q); pairings involving infinity give the identity in GT."""
    if is_inf(P) or is_inf(Q):
        return FQ12.one()
    # py_ecc pairing expects (Q, P)
    return _pairing(Q, P)


def check_pairing_product(pairs: Iterable[Tuple[G1Point, G2Point]]) -> bool:
    """Return True iff ∏ e(P_i, Q_i) == 1 in GT."""
    acc = FQ12.one()
    for P, Q in pairs:
        acc = acc * pair(P, Q)
    return acc == FQ12.one()
