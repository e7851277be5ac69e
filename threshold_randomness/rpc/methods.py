"""
threshold_randomness.rpc.methods
--------------------------------

JSON-RPC method shims for the randomness engine.

Each shim validates and normalizes its arguments with a
pydantic model, calls the :class:`~threshold_randomness.engine.Engine`, and
returns JSON-safe values. Engine errors propagate unchanged; transports map
them with ``ThresholdRandomnessError.to_dict()``.

Exposed methods:

- trand.getParams()
- trand.getRequest(id)
- trand.getRandomnessRequest(id)
- trand.getAllRequests()
- trand.isInFlight(id)
- trand.getCountOfUnfulfilled()
- trand.getRequestIds(state)
- trand.estimatePrice(budget, unit_price?)
- trand.getSubscription(sub_id)
- trand.retryCallback(id)

Caller-bound methods (``AUTHENTICATED_RPC_METHODS``) act on behalf of an
address. The caller is never read from the params: the transport resolves it
from its own authentication and passes it in, and a ``caller`` param is
rejected.

- trand.requestRandomness(budget, sub_id?, prepayment?)
- trand.requestSignature(message, condition?, scheme_id?)
- trand.fulfill(id, signature, unit_price?)

All byte strings are 0x-prefixed hex.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:  # pragma: no cover
    from ..engine import Engine


# ---------- helpers ----------

def _strip_0x(s: str) -> str:
    return s[2:] if s.startswith(("0x", "0X")) else s


def _hex_to_bytes(s: str) -> bytes:
    return bytes.fromhex(_strip_0x(s))


def _bytes_to_hex(b: Optional[bytes]) -> Optional[str]:
    return None if b is None else "0x" + bytes(b).hex()


# ---------- request models ----------

class _Args(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class _StrictArgs(_Args):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


class RequestIdArg(_Args):
    id: int = Field(..., ge=1, alias="request_id", description="Ledger request id.")


class RequestIdsQuery(_Args):
    state: Literal["unfulfilled", "fulfilled", "errored"] = "unfulfilled"


class PriceQuery(_Args):
    budget: int = Field(..., ge=0, description="Callback compute budget.")
    unit_price: Optional[int] = Field(default=None, ge=0)


class SubscriptionArg(_Args):
    sub_id: int = Field(..., ge=1)


class RequestParams(_StrictArgs):
    budget: int = Field(..., ge=0)
    sub_id: int = Field(default=0, ge=0)
    prepayment: int = Field(default=0, ge=0)


class SignatureRequestParams(_StrictArgs):
    message: str = Field(..., description="0x-hex message to be signed.")
    condition: str = Field(default="0x", description="0x-hex condition, e.g. an encoded unlock time.")
    scheme_id: Optional[str] = Field(default=None, min_length=1)

    @field_validator("message", "condition")
    @classmethod
    def _hex_ok(cls, v: str) -> str:
        _ = _hex_to_bytes(v)
        return v


class FulfillParams(_StrictArgs):
    id: int = Field(..., ge=1, alias="request_id")
    signature: str = Field(..., description="0x-hex 64-byte G1 signature.")
    unit_price: Optional[int] = Field(default=None, ge=0)

    @field_validator("signature")
    @classmethod
    def _sig_hex(cls, v: str) -> str:
        _ = _hex_to_bytes(v)
        return v


# ---------- method handlers ----------

def trand_get_params(engine: "Engine", _args: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Engine configuration, scheme ids, public key and coordinator address."""
    return {
        "config": engine.config.to_dict(),
        "pricing": engine.accountant.pricing.to_dict(),
        "schemes": engine.registry.scheme_ids(),
        "publicKey": _bytes_to_hex(engine.public_key_bytes),
        "dst": engine.scheme.dst.decode("ascii"),
        "coordinator": engine.coordinator.address,
        "disabled": engine.accountant.disabled,
    }


def trand_get_request(engine: "Engine", args: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    q = RequestIdArg(**args)
    rec = engine.get_request(q.id)
    return None if rec is None else rec.to_dict()


def trand_get_randomness_request(engine: "Engine", args: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Coordinator view, plus the derived randomness once fulfilled."""
    q = RequestIdArg(**args)
    rec = engine.get_randomness_request(q.id)
    if rec is None:
        return None
    out = rec.to_dict()
    out["randomness"] = _bytes_to_hex(engine.get_randomness(q.id))
    return out


def trand_get_all_requests(engine: "Engine", _args: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
    return [r.to_dict() for r in engine.get_all_requests()]


def trand_is_in_flight(engine: "Engine", args: Mapping[str, Any]) -> bool:
    q = RequestIdArg(**args)
    return engine.is_in_flight(q.id)


def trand_get_count_of_unfulfilled(engine: "Engine", _args: Optional[Mapping[str, Any]] = None) -> int:
    return engine.count_unfulfilled()


def trand_get_request_ids(engine: "Engine", args: Optional[Mapping[str, Any]] = None) -> List[int]:
    q = RequestIdsQuery(**(args or {}))
    if q.state == "fulfilled":
        return engine.fulfilled_ids()
    if q.state == "errored":
        return engine.errored_ids()
    return engine.unfulfilled_ids()


def trand_estimate_price(engine: "Engine", args: Mapping[str, Any]) -> int:
    q = PriceQuery(**args)
    return engine.estimate_price(q.budget, q.unit_price)


def trand_get_subscription(engine: "Engine", args: Mapping[str, Any]) -> Dict[str, Any]:
    q = SubscriptionArg(**args)
    out = engine.get_subscription(q.sub_id).to_dict()
    out["pendingRequestExists"] = engine.pending_request_exists(q.sub_id)
    return out


def trand_request_randomness(engine: "Engine", args: Mapping[str, Any], caller: str) -> Dict[str, Any]:
    p = RequestParams(**args)
    rid = engine.request_randomness(caller, p.budget, p.sub_id, p.prepayment)
    return {"requestId": rid, "inFlight": engine.is_in_flight(rid)}


def trand_request_signature(engine: "Engine", args: Mapping[str, Any], caller: str) -> Dict[str, Any]:
    """Raw signing request; the signature goes to ``caller.receive_signature``."""
    p = SignatureRequestParams(**args)
    rid = engine.request_signature(
        caller, _hex_to_bytes(p.message), _hex_to_bytes(p.condition), p.scheme_id
    )
    return {"requestId": rid, "inFlight": engine.is_in_flight(rid)}


def trand_fulfill(engine: "Engine", args: Mapping[str, Any], caller: str) -> Dict[str, Any]:
    """Submit a threshold signature; returns the delivery outcome."""
    p = FulfillParams(**args)
    result = engine.fulfill(caller, p.id, _hex_to_bytes(p.signature), p.unit_price)
    return {"requestId": p.id, "delivery": result.to_dict(), "inFlight": engine.is_in_flight(p.id)}


def trand_retry_callback(engine: "Engine", args: Mapping[str, Any]) -> Dict[str, Any]:
    q = RequestIdArg(**args)
    result = engine.retry_callback(q.id)
    return {"requestId": q.id, "delivery": result.to_dict(), "inFlight": engine.is_in_flight(q.id)}


# Public registry mapping JSON-RPC method names to callables.
# Each callable has signature: (engine, args_dict) -> result
RPC_METHODS: Dict[str, Callable[..., Any]] = {
    "trand.getParams": trand_get_params,
    "trand.getRequest": trand_get_request,
    "trand.getRandomnessRequest": trand_get_randomness_request,
    "trand.getAllRequests": trand_get_all_requests,
    "trand.isInFlight": trand_is_in_flight,
    "trand.getCountOfUnfulfilled": trand_get_count_of_unfulfilled,
    "trand.getRequestIds": trand_get_request_ids,
    "trand.estimatePrice": trand_estimate_price,
    "trand.getSubscription": trand_get_subscription,
    "trand.retryCallback": trand_retry_callback,
}

# Caller-bound methods: (engine, args_dict, caller) -> result
AUTHENTICATED_RPC_METHODS: Dict[str, Callable[..., Any]] = {
    "trand.requestRandomness": trand_request_randomness,
    "trand.requestSignature": trand_request_signature,
    "trand.fulfill": trand_fulfill,
}

__all__ = [
    "RequestIdArg",
    "RequestIdsQuery",
    "PriceQuery",
    "SubscriptionArg",
    "RequestParams",
    "SignatureRequestParams",
    "FulfillParams",
    "RPC_METHODS",
    "AUTHENTICATED_RPC_METHODS",
]
