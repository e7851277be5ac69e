"""
Core records for the randomness engine.

Types provided:
  • RequestId             : integer id assigned by the ledger (0 = "no request")
  • Address               : 20-byte account address as 0x-prefixed lowercase hex
  • SigningRequest        : one ledger row; signature filled in on fulfillment
  • RandomnessRequest     : coordinator-side view linked to a SigningRequest
  • Subscription          : prepaid balance shared by registered consumers
  • ConsumerRegistration  : per (subscription, consumer) nonce and pending count
  • ChargeRecord          : what was charged for a request, and from where
  • DeliveryResult        : outcome of one budgeted callback

Records the engine mutates are plain (non-frozen) dataclasses; mutation goes
through the engine journal so a failed operation can be undone.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, NewType, Optional

from ..errors import ValidationError, ZeroTarget

RequestId = NewType("RequestId", int)
Address = str

FundingKind = Literal["subscription", "direct"]
DeliveryReason = Literal["ok", "reverted", "out_of_budget", "no_code"]

ZERO_ADDRESS: Address = "0x" + "00" * 20

_ADDR_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(addr: str) -> Address:
    """Return ``addr`` as lowercase 0x-hex; raise ValidationError if malformed."""
    if not isinstance(addr, str):
        raise ValidationError("address must be a string", details={"type": type(addr).__name__})
    a = addr if addr.startswith(("0x", "0X")) else "0x" + addr
    a = "0x" + a[2:]
    if not _ADDR_RE.match(a):
        raise ValidationError("address must be 20 bytes of hex", details={"address": addr})
    return a.lower()


def require_target(addr: str, role: str) -> Address:
    """Like ``normalize_address`` but also refuses ``ZERO_ADDRESS``."""
    a = normalize_address(addr)
    if a == ZERO_ADDRESS:
        raise ZeroTarget(role=role)
    return a


def _hex(b: bytes) -> str:
    return "0x" + bytes(b).hex()


# ---- Ledger ------------------------------------------------------------------


@dataclass
class SigningRequest:
    """
    One signing request.

    Fields:
      id            : ledger id, strictly increasing, never reused
      requester     : address whose ``receive_signature`` gets the result
      message       : the bytes that were hashed onto the curve
      message_point : wire encoding of H(message) under the scheme DST
      condition     : opaque release condition (may be empty)
      scheme_id     : registry key of the verifying scheme
      signature     : empty until fulfilled
      fulfilled     : set once, on the verified fulfillment
    """

    id: int
    requester: Address
    message: bytes
    message_point: bytes
    condition: bytes
    scheme_id: str
    signature: bytes = b""
    fulfilled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "requester": self.requester,
            "message": _hex(self.message),
            "messagePoint": _hex(self.message_point),
            "condition": _hex(self.condition),
            "schemeId": self.scheme_id,
            "signature": _hex(self.signature),
            "fulfilled": self.fulfilled,
        }


@dataclass
class RandomnessRequest:
    """
    Coordinator view of a randomness request.

    ``prepaid`` is only non-zero for direct funding (``sub_id == 0``).
    """

    nonce: int
    requester: Address
    sub_id: int
    callback_budget: int
    prepaid: int
    request_id: int
    message: bytes
    condition: bytes = b""
    signature: bytes = b""

    @property
    def funding(self) -> FundingKind:
        return "direct" if self.sub_id == 0 else "subscription"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nonce": self.nonce,
            "requester": self.requester,
            "subId": self.sub_id,
            "callbackBudget": self.callback_budget,
            "prepaid": self.prepaid,
            "requestId": self.request_id,
            "message": _hex(self.message),
            "condition": _hex(self.condition),
            "signature": _hex(self.signature),
        }


# ---- Subscriptions -----------------------------------------------------------


@dataclass
class ConsumerRegistration:
    nonce: int = 0
    pending: int = 0
    active: bool = True


@dataclass
class Subscription:
    """
    Prepaid balance shared by up to ``MAX_CONSUMERS`` consumer addresses.

    ``reserved`` is the sum of the estimates of admitted, uncharged requests;
    admission only succeeds while ``balance - reserved`` covers the new
    estimate. ``pending_owner`` is set by a transfer request and cleared when
    the new owner accepts.
    """

    sub_id: int
    owner: Address
    balance: int = 0
    reserved: int = 0
    request_count: int = 0
    consumers: List[Address] = field(default_factory=list)
    pending_owner: Optional[Address] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subId": self.sub_id,
            "owner": self.owner,
            "balance": self.balance,
            "reserved": self.reserved,
            "requestCount": self.request_count,
            "consumers": list(self.consumers),
            "pendingOwner": self.pending_owner,
        }


# ---- Accounting / delivery ---------------------------------------------------


@dataclass(frozen=True)
class ChargeRecord:
    """
    Result of charging one request.

    ``waived`` is True when the subscription disappeared (cancelled) while
    the request was pending; nothing was debited in that case.
    """

    request_id: int
    funding: FundingKind
    amount: int
    units_used: int
    unit_price: int
    sub_id: int = 0
    waived: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "funding": self.funding,
            "amount": self.amount,
            "unitsUsed": self.units_used,
            "unitPrice": self.unit_price,
            "subId": self.sub_id,
            "waived": self.waived,
        }


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    reason: DeliveryReason
    units_used: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "reason": self.reason,
            "unitsUsed": self.units_used,
            "error": self.error,
        }


__all__ = [
    "RequestId",
    "Address",
    "FundingKind",
    "DeliveryReason",
    "ZERO_ADDRESS",
    "require_target",
    "normalize_address",
    "SigningRequest",
    "RandomnessRequest",
    "ConsumerRegistration",
    "Subscription",
    "ChargeRecord",
    "DeliveryResult",
]
