"""
Signature schemes understood by the request ledger.

- registry  : append-only map scheme id -> verifier
- bls_bn254 : BLS signatures on BN254 (G1 signatures, G2 public key)
"""

from .bls_bn254 import BN254BLSScheme, randomness_dst
from .registry import SignatureScheme, SignatureSchemeRegistry

__all__ = ["BN254BLSScheme", "SignatureScheme", "SignatureSchemeRegistry", "randomness_dst"]
