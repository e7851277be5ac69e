"""
Threshold randomness engine.

Callers request randomness; an external threshold-signing group answers with
a BLS signature over BN254. The engine verifies the signature with a pairing
check, derives ``keccak256(signature)`` as the random value, forwards it to
the requester through a budgeted callback, and charges the requester once.

Entry point is :class:`threshold_randomness.engine.Engine`. Only light,
stable exports are surfaced here to avoid import cycles.
"""

from __future__ import annotations

# Public version string (lazy fallback during early bootstrap)
try:
    from .version import __version__  # type: ignore
except Exception:  # pragma: no cover
    __version__ = "0.0.0+dev"

__all__ = ["__version__"]
