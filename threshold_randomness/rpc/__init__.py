"""JSON-RPC surface for the threshold randomness engine."""

from .methods import AUTHENTICATED_RPC_METHODS, RPC_METHODS

__all__ = ["RPC_METHODS", "AUTHENTICATED_RPC_METHODS"]
