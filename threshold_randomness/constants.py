"""
Engine constants.

This module centralizes:
- Curve parameters for BN254 (alt_bn128) used by the BLS verifier
- Hash-to-curve parameters (expand_message_xmd over Keccak-256)
- Domain separation tag layout for randomness requests
- Request size limits enforced by the ledger
- Subscription limits

Changing any of the curve or DST values invalidates every signature the
threshold network has produced, so treat them as protocol constants.
"""

from __future__ import annotations

# -----------------------------
# BN254 curve parameters
# -----------------------------
# Base field modulus p and prime subgroup order r.
FIELD_MODULUS: int = 21888242871839275222246405745257275088696311157297823662689037894645226208583
CURVE_ORDER: int = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# y^2 = x^3 + 3 over F_p
CURVE_B: int = 3

# Encodings: 32-byte big-endian coordinates
FIELD_ELEMENT_BYTES: int = 32
G1_POINT_BYTES: int = 2 * FIELD_ELEMENT_BYTES   # x || y
G2_POINT_BYTES: int = 4 * FIELD_ELEMENT_BYTES   # x.im || x.re || y.im || y.re

# Shallue-van de Woestijne constants for G1 with Z = 1 (RFC 9380, F.1)
SVDW_Z: int = 1
# c1 = g(Z)
SVDW_C1: int = 4
# c2 = -Z / 2
SVDW_C2: int = 10944121435919637611123202872628637544348155578648911831344518947322613104291
# c3 = sqrt(-g(Z) * (3 * Z^2 + 4 * A)), sgn0(c3) == 0
SVDW_C3: int = 8815841940592487685674414971303048083897117035520822607866
# c4 = -4 * g(Z) / (3 * Z^2 + 4 * A)
SVDW_C4: int = 7296080957279758407415468581752425029565437052432607887563012631548408736189

# -----------------------------
# Hash to field
# -----------------------------
# Keccak-256: output 32 bytes, rate (block) 136 bytes
XMD_B_IN_BYTES: int = 32
XMD_R_IN_BYTES: int = 136
# k = 128 bit security -> L = ceil((ceil(log2(p)) + k) / 8) = 48
HASH_TO_FIELD_L: int = 48
MAX_DST_BYTES: int = 255

# -----------------------------
# Domain separation
# -----------------------------
SCHEME_BN254: str = "BN254"
DEFAULT_APPLICATION: str = "trand"
RANDOMNESS_DST_TEMPLATE: str = "{application}-randomness-v01-BN254G1_XMD:KECCAK-256_SVDW_RO_0x{chain_id:064x}_"

# -----------------------------
# Ledger limits
# -----------------------------
MAX_MESSAGE_BYTES: int = 4096
MIN_MESSAGE_BYTES: int = 1
MAX_CONDITION_BYTES: int = 4096

# -----------------------------
# Subscriptions
# -----------------------------
MAX_CONSUMERS: int = 100
ZERO_SUBSCRIPTION: int = 0

# Compute units reserved for a bounded sub-call: budget / 63 + 1
DISPATCH_RESERVE_DIVISOR: int = 63

__all__ = [
    "FIELD_MODULUS",
    "CURVE_ORDER",
    "CURVE_B",
    "FIELD_ELEMENT_BYTES",
    "G1_POINT_BYTES",
    "G2_POINT_BYTES",
    "SVDW_Z",
    "SVDW_C1",
    "SVDW_C2",
    "SVDW_C3",
    "SVDW_C4",
    "XMD_B_IN_BYTES",
    "XMD_R_IN_BYTES",
    "HASH_TO_FIELD_L",
    "MAX_DST_BYTES",
    "SCHEME_BN254",
    "DEFAULT_APPLICATION",
    "RANDOMNESS_DST_TEMPLATE",
    "MAX_MESSAGE_BYTES",
    "MIN_MESSAGE_BYTES",
    "MAX_CONDITION_BYTES",
    "MAX_CONSUMERS",
    "ZERO_SUBSCRIPTION",
    "DISPATCH_RESERVE_DIVISOR",
]
