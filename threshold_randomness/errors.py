# threshold_randomness/errors.py
"""
Error types for the threshold randomness engine.

Every error carries a stable ``code`` string, a human message and an optional
``details`` mapping so it can be surfaced over RPC or written to logs as-is.

The hierarchy mirrors how callers are expected to react:

- validation errors    : fix the input and resubmit (no state was touched)
- verification errors  : the signer resubmits a correct signature
- payment errors       : fund the subscription / attach a larger prepayment
- lifecycle errors     : the request id is unknown or in the wrong state
- custody errors       : withdrawals that would double-spend or overdraw
- accounting errors    : bookkeeping bugs; the whole operation is aborted
"""

from __future__ import annotations


from typing import Any, Dict, Mapping, Optional
import json


class ThresholdRandomnessError(Exception):
    """Base class for all engine errors."""

    code: str = "TRAND_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            try:
                packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"), default=str)
            except Exception:
                packed = str(self.details)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(ThresholdRandomnessError):
    """Malformed input rejected before any state change."""
    code = "TRAND_VALIDATION"


class UnsupportedScheme(ValidationError):
    code = "TRAND_UNSUPPORTED_SCHEME"

    def __init__(self, scheme_id: str, *, message: str = "signature scheme not supported") -> None:
        super().__init__(message, details={"scheme_id": scheme_id})


class InvalidMessage(ValidationError):
    code = "TRAND_INVALID_MESSAGE"


class InvalidCondition(ValidationError):
    code = "TRAND_INVALID_CONDITION"


class ZeroTarget(ValidationError):
    code = "TRAND_ZERO_TARGET"

    def __init__(self, *, role: str) -> None:
        super().__init__(f"{role} must not be the zero address", details={"role": role})


class BudgetTooHigh(ValidationError):
    code = "TRAND_BUDGET_TOO_HIGH"

    def __init__(self, *, budget: int, maximum: int) -> None:
        super().__init__("callback budget above configured maximum", details={"budget": budget, "max": maximum})


class NotConfigured(ValidationError):
    code = "TRAND_NOT_CONFIGURED"


class EngineDisabled(ValidationError):
    code = "TRAND_DISABLED"


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class VerificationFailed(ThresholdRandomnessError):
    """Pairing check did not hold, or the pairing computation itself failed."""
    code = "TRAND_VERIFICATION_FAILED"

    def __init__(self, request_id: int, *, pairing_holds: bool, computation_ok: bool) -> None:
        super().__init__(
            "signature verification failed",
            details={"request_id": request_id, "pairing_holds": pairing_holds, "computation_ok": computation_ok},
        )


class PointDecodeError(ThresholdRandomnessError):
    """Curve point encoding has the wrong length, overflows the field or is off-curve."""
    code = "TRAND_POINT_DECODE"


# ---------------------------------------------------------------------------
# Request lifecycle
# ---------------------------------------------------------------------------


class UnknownRequest(ThresholdRandomnessError):
    code = "TRAND_UNKNOWN_REQUEST"

    def __init__(self, request_id: int, *, message: str = "no request with specified id") -> None:
        super().__init__(message, details={"request_id": request_id})


class RequestAlreadyFulfilled(UnknownRequest):
    code = "TRAND_ALREADY_FULFILLED"

    def __init__(self, request_id: int) -> None:
        super().__init__(request_id, message="request already fulfilled; use retry for failed callbacks")


class RequestNotErrored(UnknownRequest):
    code = "TRAND_NOT_ERRORED"

    def __init__(self, request_id: int) -> None:
        super().__init__(request_id, message="request has no failed callback to retry")


# ---------------------------------------------------------------------------
# Payment / subscriptions
# ---------------------------------------------------------------------------


class PaymentError(ThresholdRandomnessError):
    code = "TRAND_PAYMENT"


class InsufficientPayment(PaymentError):
    code = "TRAND_INSUFFICIENT_PAYMENT"

    def __init__(self, *, required: int, provided: int) -> None:
        super().__init__("prepayment below estimated price", details={"required": required, "provided": provided})


class InsufficientBalance(PaymentError):
    code = "TRAND_INSUFFICIENT_BALANCE"

    def __init__(self, *, sub_id: int, required: int, balance: int, reserved: int = 0) -> None:
        super().__init__(
            "subscription balance too low",
            details={"sub_id": sub_id, "required": required, "balance": balance, "reserved": reserved},
        )


class InvalidSubscription(PaymentError):
    code = "TRAND_INVALID_SUBSCRIPTION"

    def __init__(self, sub_id: int) -> None:
        super().__init__("no such subscription", details={"sub_id": sub_id})


class InvalidConsumer(PaymentError):
    code = "TRAND_INVALID_CONSUMER"

    def __init__(self, *, sub_id: int, consumer: str) -> None:
        super().__init__("consumer not registered on subscription", details={"sub_id": sub_id, "consumer": consumer})


class TooManyConsumers(PaymentError):
    code = "TRAND_TOO_MANY_CONSUMERS"


class PendingRequestExists(PaymentError):
    code = "TRAND_PENDING_REQUEST_EXISTS"


class AccountingError(PaymentError):
    """Bookkeeping invariant violated; the enclosing operation is aborted."""
    code = "TRAND_ACCOUNTING"


class AlreadyCharged(PaymentError):
    """Raised when a second charge is attempted for the same request id."""
    code = "TRAND_ALREADY_CHARGED"

    def __init__(self, request_id: int) -> None:
        super().__init__("request already charged", details={"request_id": request_id})


# ---------------------------------------------------------------------------
# Authorization / registry / custody
# ---------------------------------------------------------------------------


class Unauthorized(ThresholdRandomnessError):
    code = "TRAND_UNAUTHORIZED"

    def __init__(self, caller: str, *, role: str) -> None:
        super().__init__(f"caller lacks role {role!r}", details={"caller": caller, "role": role})


class SchemeAlreadyRegistered(ThresholdRandomnessError):
    code = "TRAND_SCHEME_EXISTS"

    def __init__(self, scheme_id: str) -> None:
        super().__init__("scheme id already registered", details={"scheme_id": scheme_id})


class InvalidSchemeHandle(ThresholdRandomnessError):
    code = "TRAND_INVALID_SCHEME_HANDLE"


class ReentrantWithdrawal(ThresholdRandomnessError):
    code = "TRAND_REENTRANT_WITHDRAWAL"

    def __init__(self, pool: str) -> None:
        super().__init__("withdrawal already in progress", details={"pool": pool})


class InsufficientPool(ThresholdRandomnessError):
    code = "TRAND_INSUFFICIENT_POOL"

    def __init__(self, *, pool: str, requested: int, available: int) -> None:
        super().__init__(
            "withdrawable pool too small",
            details={"pool": pool, "requested": requested, "available": available},
        )


__all__ = [
    "ThresholdRandomnessError",
    "ValidationError",
    "UnsupportedScheme",
    "InvalidMessage",
    "InvalidCondition",
    "ZeroTarget",
    "BudgetTooHigh",
    "NotConfigured",
    "EngineDisabled",
    "VerificationFailed",
    "PointDecodeError",
    "UnknownRequest",
    "RequestAlreadyFulfilled",
    "RequestNotErrored",
    "PaymentError",
    "InsufficientPayment",
    "InsufficientBalance",
    "InvalidSubscription",
    "InvalidConsumer",
    "TooManyConsumers",
    "PendingRequestExists",
    "AlreadyCharged",
    "AccountingError",
    "Unauthorized",
    "SchemeAlreadyRegistered",
    "InvalidSchemeHandle",
    "ReentrantWithdrawal",
    "InsufficientPool",
]
