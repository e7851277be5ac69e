"""
Curve and hash primitives for BLS over BN254.

Submodules:
- field : F_p arithmetic used by the hash-to-curve map
- hash  : Keccak-256, expand_message_xmd, hash_to_field, ABI words
- bn254 : hash to G1, point codecs, pairing product check
"""

from .hash import keccak256

__all__ = ["keccak256"]
