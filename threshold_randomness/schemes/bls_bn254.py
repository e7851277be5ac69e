"""
BLS signatures over BN254 (signatures in G1, public key in G2).

Verification equation:

    e(σ, -G2) · e(H(m), pk) == 1

where H is the RFC 9380 hash_to_curve suite
``BN254G1_XMD:KECCAK-256_SVDW_RO_`` under a caller-chosen domain separation
tag. The scheme object is bound to one DST and one group public key; the
ledger only ever sees wire encodings (64-byte G1, 128-byte G2).

``verify`` never raises: a malformed point or a failing pairing evaluation is
reported through ``computation_ok=False`` so callers can tell "wrong
signature" apart from "could not evaluate".
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple, Union

from ..constants import DEFAULT_APPLICATION, RANDOMNESS_DST_TEMPLATE
from ..crypto import bn254
from ..errors import PointDecodeError, ValidationError

logger = logging.getLogger(__name__)

PublicKeyLike = Union[bytes, bytearray, tuple]


def randomness_dst(chain_id: int, application: str = DEFAULT_APPLICATION) -> bytes:
    """Domain separation tag for randomness requests on ``chain_id``."""
    if chain_id < 0:
        raise ValidationError("chain_id must be >= 0", details={"chain_id": chain_id})
    if not application:
        raise ValidationError("application prefix must be non-empty")
    return RANDOMNESS_DST_TEMPLATE.format(application=application, chain_id=chain_id).encode("ascii")


def derive_public_key(secret_key: int) -> bytes:
    """Return the 128-byte G2 public key sk·G2."""
    sk = secret_key % bn254.curve_order()
    if sk == 0:
        raise ValidationError("secret key must be non-zero mod r")
    return bn254.marshal_g2(bn254.g2_mul(bn254.g2_generator(), sk))


def sign(secret_key: int, message: bytes, dst: bytes) -> bytes:
    """Return the 64-byte G1 signature sk·H(m). Local signer simulation only."""
    sk = secret_key % bn254.curve_order()
    if sk == 0:
        raise ValidationError("secret key must be non-zero mod r")
    return bn254.marshal_g1(bn254.g1_mul(bn254.hash_to_g1(dst, message), sk))


class BN254BLSScheme:
    """
    Verifier for one (DST, public key) pair.

        scheme = BN254BLSScheme(dst=randomness_dst(31337), public_key=pk_bytes)
        point = scheme.hash_message(msg)
        ok, computed = scheme.verify(point, sig)
    """

    def __init__(self, *, dst: bytes, public_key: PublicKeyLike) -> None:
        if not dst:
            raise ValidationError("dst must be non-empty")
        self._dst = bytes(dst)
        if isinstance(public_key, (bytes, bytearray)):
            self._pk_bytes = bytes(public_key)
            self._pk = bn254.unmarshal_g2(self._pk_bytes)
        else:
            self._pk = public_key
            self._pk_bytes = bn254.marshal_g2(public_key)

    @classmethod
    def for_chain(
        cls, chain_id: int, public_key: PublicKeyLike, *, application: str = DEFAULT_APPLICATION
    ) -> "BN254BLSScheme":
        return cls(dst=randomness_dst(chain_id, application), public_key=public_key)

    @property
    def dst(self) -> bytes:
        return self._dst

    @property
    def public_key(self) -> bn254.G2Point:
        return self._pk

    @property
    def public_key_bytes(self) -> bytes:
        return self._pk_bytes

    def hash_to_point(self, message: bytes) -> bn254.G1Point:
        return bn254.hash_to_g1(self._dst, message)

    def hash_message(self, message: bytes) -> bytes:
        return bn254.marshal_g1(self.hash_to_point(message))

    def verify(
        self, message_point: bytes, signature: bytes, public_key: Optional[bytes] = None
    ) -> Tuple[bool, bool]:
        try:
            hm = bn254.unmarshal_g1(message_point)
            sig = bn254.unmarshal_g1(signature)
            pk = self._pk if public_key is None else bn254.unmarshal_g2(public_key)
            holds = bn254.check_pairing_product(
                [(sig, bn254.g2_neg(bn254.g2_generator())), (hm, pk)]
            )
        except (PointDecodeError, ArithmeticError, AssertionError, TypeError, ValueError) as e:
            logger.debug("BN254 verify could not be evaluated: %s", e)
            return False, False
        return holds, True

    def sign(self, secret_key: int, message: bytes) -> bytes:
        return sign(secret_key, message, self._dst)


__all__ = ["BN254BLSScheme", "randomness_dst", "sign", "derive_public_key"]
