"""Typed records shared by the ledger, accountant and coordinator."""

from .core import (
    Address,
    ChargeRecord,
    ConsumerRegistration,
    DeliveryResult,
    FundingKind,
    RandomnessRequest,
    RequestId,
    SigningRequest,
    Subscription,
    normalize_address,
)

__all__ = [
    "Address",
    "ChargeRecord",
    "ConsumerRegistration",
    "DeliveryResult",
    "FundingKind",
    "RandomnessRequest",
    "RequestId",
    "SigningRequest",
    "Subscription",
    "normalize_address",
]
