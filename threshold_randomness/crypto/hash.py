# SPDX-License-Identifier: MIT
"""
threshold_randomness.crypto.hash
================================

Keccak-256 plus the RFC 9380 hash-to-field building blocks used by the BN254
verifier.

Key pieces
----------
- :func:`keccak256`: one-shot Keccak-256 (Ethereum flavour, not SHA3-256).
- :func:`expand_message_xmd`: uniform byte expansion with a domain separation
  tag (RFC 9380 §5.3.1), instantiated with Keccak-256 (b=32, r=136).
- :func:`hash_to_field`: ``count`` elements of F_p, 48 bytes of expansion each.
- :func:`abi_word` / :func:`abi_address`: 32-byte ABI words used when framing
  request messages.

Keccak comes from PyCryptodome (``Crypto.Hash.keccak``).
"""

from __future__ import annotations

from typing import List, Union

from Crypto.Hash import keccak as _keccak

from ..constants import (
    FIELD_MODULUS,
    HASH_TO_FIELD_L,
    MAX_DST_BYTES,
    XMD_B_IN_BYTES,
    XMD_R_IN_BYTES,
)
from ..errors import ValidationError

BytesLike = Union[bytes, bytearray, memoryview]

__all__ = [
    "keccak256",
    "expand_message_xmd",
    "hash_to_field",
    "abi_word",
    "abi_address",
]


def _as_bytes(name: str, data: BytesLike) -> bytes:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    raise TypeError(f"{name} must be bytes-like (got {type(data).__name__})")


def keccak256(data: BytesLike) -> bytes:
    """Return the 32-byte Keccak-256 digest of ``data``."""
    h = _keccak.new(digest_bits=256)
    h.update(_as_bytes("data", data))
    return h.digest()


def _i2osp(value: int, length: int) -> bytes:
    return value.to_bytes(length, "big")


def _strxor(a: bytes, b: bytes) -> bytes:
    return bytes(x ^ y for x, y in zip(a, b))


def expand_message_xmd(msg: BytesLike, dst: BytesLike, len_in_bytes: int) -> bytes:
    """
    RFC 9380 expand_message_xmd with Keccak-256.

    Raises ValidationError if the requested length or DST is out of range.
    """
    msg_b = _as_bytes("msg", msg)
    dst_b = _as_bytes("dst", dst)
    if len(dst_b) > MAX_DST_BYTES:
        raise ValidationError("domain separation tag too long", details={"len": len(dst_b)})
    ell = -(-len_in_bytes // XMD_B_IN_BYTES)
    if ell > 255 or len_in_bytes > 65535 or len_in_bytes <= 0:
        raise ValidationError("requested expansion length out of range", details={"len": len_in_bytes})

    dst_prime = dst_b + _i2osp(len(dst_b), 1)
    z_pad = bytes(XMD_R_IN_BYTES)
    l_i_b_str = _i2osp(len_in_bytes, 2)
    msg_prime = z_pad + msg_b + l_i_b_str + _i2osp(0, 1) + dst_prime

    b_0 = keccak256(msg_prime)
    b_i = keccak256(b_0 + _i2osp(1, 1) + dst_prime)
    out = bytearray(b_i)
    for i in range(2, ell + 1):
        b_i = keccak256(_strxor(b_0, b_i) + _i2osp(i, 1) + dst_prime)
        out += b_i
    return bytes(out[:len_in_bytes])


def hash_to_field(msg: BytesLike, dst: BytesLike, count: int = 2) -> List[int]:
    """Hash ``msg`` to ``count`` uniformly distributed elements of F_p (as ints)."""
    uniform = expand_message_xmd(msg, dst, count * HASH_TO_FIELD_L)
    out: List[int] = []
    for i in range(count):
        chunk = uniform[i * HASH_TO_FIELD_L:(i + 1) * HASH_TO_FIELD_L]
        out.append(int.from_bytes(chunk, "big") % FIELD_MODULUS)
    return out


def abi_word(value: int) -> bytes:
    """ABI-encode an unsigned integer as one 32-byte word."""
    if value < 0 or value >= 1 << 256:
        raise ValidationError("value does not fit in uint256", details={"value": value})
    return value.to_bytes(32, "big")


def abi_address(address: str) -> bytes:
    """ABI-encode a 20-byte hex address as one left-padded 32-byte word."""
    raw = address[2:] if address.startswith(("0x", "0X")) else address
    try:
        b = bytes.fromhex(raw)
    except ValueError as e:
        raise ValidationError("address is not hex", details={"address": address}) from e
    if len(b) != 20:
        raise ValidationError("address must be 20 bytes", details={"address": address})
    return bytes(12) + b
