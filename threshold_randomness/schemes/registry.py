"""
Signature scheme registry.

Maps a stable scheme identifier (e.g. ``"BN254"``) to a verifier object. The
table is append-only: once an id is live it can never be re-pointed, so a
request created under a scheme is always verified by the same code.

A verifier is anything implementing :class:`SignatureScheme`; the registry
checks for the two methods the ledger calls rather than requiring a base
class.
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from ..errors import InvalidSchemeHandle, SchemeAlreadyRegistered, UnsupportedScheme

logger = logging.getLogger(__name__)


@runtime_checkable
class SignatureScheme(Protocol):
    def hash_message(self, message: bytes) -> bytes:
        """Return the wire encoding of the point/digest the signature must cover."""
        ...

    def verify(
        self, message_point: bytes, signature: bytes, public_key: Optional[bytes] = None
    ) -> Tuple[bool, bool]:
        """Return ``(pairing_holds, computation_ok)``."""
        ...


_REQUIRED_METHODS = ("hash_message", "verify")


class SignatureSchemeRegistry:
    """Threadsafe, append-only scheme table owned by one engine instance."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._schemes: Dict[str, SignatureScheme] = {}

    def register(self, scheme_id: str, scheme: SignatureScheme) -> None:
        if not scheme_id or not isinstance(scheme_id, str):
            raise InvalidSchemeHandle("scheme id must be a non-empty string")
        missing = [m for m in _REQUIRED_METHODS if not callable(getattr(scheme, m, None))]
        if scheme is None or missing:
            raise InvalidSchemeHandle(
                "scheme handle does not implement the verifier interface",
                details={"scheme_id": scheme_id, "missing": missing},
            )
        with self._lock:
            if scheme_id in self._schemes:
                raise SchemeAlreadyRegistered(scheme_id)
            self._schemes[scheme_id] = scheme
        logger.info("registered signature scheme %s (%s)", scheme_id, type(scheme).__name__)

    def is_supported(self, scheme_id: str) -> bool:
        with self._lock:
            return scheme_id in self._schemes

    def resolve(self, scheme_id: str) -> SignatureScheme:
        with self._lock:
            try:
                return self._schemes[scheme_id]
            except KeyError:
                raise UnsupportedScheme(scheme_id) from None

    def scheme_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._schemes)

    def __contains__(self, scheme_id: object) -> bool:
        return isinstance(scheme_id, str) and self.is_supported(scheme_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._schemes)


__all__ = ["SignatureScheme", "SignatureSchemeRegistry"]
