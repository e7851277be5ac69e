"""
threshold_randomness.adapters.rpc_mount
---------------------------------------

Mount HTTP + JSON-RPC endpoints for an :class:`Engine`:

- REST (prefix ``/trand`` by default):
    GET  /params                  → config, public key, coordinator address
    GET  /requests                → every signing request
    GET  /requests/{id}           → one signing request
    GET  /randomness/{id}         → coordinator view + derived randomness
    GET  /in_flight/{id}          → bool
    GET  /ids/{state}             → unfulfilled | fulfilled | errored ids
    GET  /price?budget=&unit_price=
    GET  /subscriptions/{sub_id}
    POST /retry/{id}              → retry a failed callback
    POST /request                 → request randomness           (bearer token)
    POST /request_signature       → raw signing request          (bearer token)
    POST /fulfill                 → submit threshold signature   (bearer token, relayer)

  The caller of a token-protected route is the address the token is bound to
  in the :class:`~threshold_randomness.adapters.auth.TokenStore`; bodies carry
  no caller field.

- JSON-RPC (optional, if a registry/dispatcher is provided): every entry of
  :data:`threshold_randomness.rpc.methods.RPC_METHODS`, plus
  :data:`~threshold_randomness.rpc.methods.AUTHENTICATED_RPC_METHODS` bound to
  a server-side ``rpc_identity`` when one is given.

Engine errors become HTTP 400 (404 for unknown ids, 409 for wrong state) with the error's
``to_dict()`` as detail. Handlers are sync; FastAPI runs them in its
threadpool and the engine lock serialises them.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from ..errors import ThresholdRandomnessError, UnknownRequest
from ..rpc.methods import (
    AUTHENTICATED_RPC_METHODS,
    RPC_METHODS,
    trand_estimate_price,
    trand_fulfill,
    trand_get_all_requests,
    trand_get_params,
    trand_get_randomness_request,
    trand_get_request,
    trand_get_request_ids,
    trand_get_subscription,
    trand_is_in_flight,
    trand_request_randomness,
    trand_request_signature,
    trand_retry_callback,
)
from ..types.core import Address
from .auth import TokenStore, caller_dependency

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------------------
# Request bodies
# --------------------------------------------------------------------------------------

class RequestReq(BaseModel):
    budget: int = Field(..., ge=0)
    sub_id: int = Field(0, ge=0)
    prepayment: int = Field(0, ge=0)


class SignatureReq(BaseModel):
    message: str = Field(..., description="0x-prefixed message to sign")
    condition: str = Field("0x", description="0x-prefixed condition bytes")
    scheme_id: Optional[str] = Field(None, min_length=1)


class FulfillReq(BaseModel):
    request_id: int = Field(..., ge=1)
    signature: str = Field(..., description="0x-prefixed 64-byte G1 signature")
    unit_price: Optional[int] = Field(None, ge=0)


# --------------------------------------------------------------------------------------
# REST router
# --------------------------------------------------------------------------------------

def _call(fn: Callable[..., Any], engine: Any, args: Optional[Mapping[str, Any]] = None, *extra: Any) -> Any:
    try:
        return fn(engine, dict(args or {}), *extra)
    except UnknownRequest as e:
        if type(e) is UnknownRequest:
            raise HTTPException(status_code=404, detail=e.to_dict()) from e
        raise HTTPException(status_code=409, detail=e.to_dict()) from e
    except ThresholdRandomnessError as e:
        logger.debug("trand REST error: %s", e)
        raise HTTPException(status_code=400, detail=e.to_dict()) from e
    except ValueError as e:
        # pydantic.ValidationError is a ValueError
        raise HTTPException(status_code=422, detail=str(e)) from e


def get_router(engine: Any, *, prefix: str = "/trand", token_store: Optional[TokenStore] = None) -> APIRouter:
    r = APIRouter(prefix=prefix, tags=["threshold-randomness"])
    authenticated = Depends(caller_dependency(token_store if token_store is not None else TokenStore()))

    @r.get("/params")
    def params() -> dict:
        return _call(trand_get_params, engine)

    @r.get("/requests")
    def all_requests() -> list:
        return _call(trand_get_all_requests, engine)

    @r.get("/requests/{request_id}")
    def request_by_id(request_id: int) -> dict:
        rec = _call(trand_get_request, engine, {"id": request_id})
        if rec is None:
            raise HTTPException(status_code=404, detail="request not found")
        return rec

    @r.get("/randomness/{request_id}")
    def randomness_by_id(request_id: int) -> dict:
        rec = _call(trand_get_randomness_request, engine, {"id": request_id})
        if rec is None:
            raise HTTPException(status_code=404, detail="randomness request not found")
        return rec

    @r.get("/in_flight/{request_id}")
    def in_flight(request_id: int) -> bool:
        return _call(trand_is_in_flight, engine, {"id": request_id})

    @r.get("/ids/{state}")
    def ids(state: str) -> list:
        return _call(trand_get_request_ids, engine, {"state": state})

    @r.get("/price")
    def price(
        budget: int = Query(..., ge=0),
        unit_price: Optional[int] = Query(None, ge=0),
    ) -> int:
        return _call(trand_estimate_price, engine, {"budget": budget, "unit_price": unit_price})

    @r.get("/subscriptions/{sub_id}")
    def subscription(sub_id: int) -> dict:
        return _call(trand_get_subscription, engine, {"sub_id": sub_id})

    @r.post("/retry/{request_id}")
    def post_retry(request_id: int) -> dict:
        return _call(trand_retry_callback, engine, {"id": request_id})

    @r.post("/request")
    def post_request(req: RequestReq, caller: Address = authenticated) -> dict:
        return _call(trand_request_randomness, engine, req.model_dump(), caller)

    @r.post("/request_signature")
    def post_request_signature(req: SignatureReq, caller: Address = authenticated) -> dict:
        return _call(trand_request_signature, engine, req.model_dump(), caller)

    @r.post("/fulfill")
    def post_fulfill(req: FulfillReq, caller: Address = authenticated) -> dict:
        return _call(trand_fulfill, engine, req.model_dump(), caller)

    return r


# --------------------------------------------------------------------------------------
# JSON-RPC registration helpers
# --------------------------------------------------------------------------------------

def _rpc_register(registry: Any, name: str, fn: Any) -> None:
    """
    Try a few common JSON-RPC registries:
      - .add_method(name, fn)
      - .add(name, fn)
      - .register(name, fn)
      - .method(name)(fn)
    """
    for attr in ("add_method", "add", "register"):
        if hasattr(registry, attr):
            getattr(registry, attr)(name, fn)  # type: ignore[misc]
            return
    if hasattr(registry, "method"):
        getattr(registry, "method")(name)(fn)  # type: ignore[misc]
        return
    raise TypeError("Unsupported JSON-RPC registry; expected add_method/add/register/method")


def _bind(
    engine: Any, fn: Callable[..., Any], identity: Optional[Callable[[], Address]] = None
) -> Callable[..., Any]:
    def _handler(**params: Any) -> Any:
        if identity is None:
            return fn(engine, params)
        return fn(engine, params, identity())

    _handler.__name__ = getattr(fn, "__name__", "trand_method")
    _handler.__doc__ = getattr(fn, "__doc__", None)
    return _handler


def bind_jsonrpc(engine: Any, rpc_registry: Any, identity: Optional[Callable[[], Address]] = None) -> None:
    """
    Register the open methods, and the caller-bound ones when ``identity`` is
    given. ``identity()`` names the address this server acts as (typically the
    relayer); JSON-RPC clients cannot choose it.
    """
    for name, fn in RPC_METHODS.items():
        _rpc_register(rpc_registry, name, _bind(engine, fn))
    if identity is None:
        return
    for name, fn in AUTHENTICATED_RPC_METHODS.items():
        _rpc_register(rpc_registry, name, _bind(engine, fn, identity))


# --------------------------------------------------------------------------------------
# Mount helper
# --------------------------------------------------------------------------------------

def mount_trand_rpc(
    app: FastAPI,
    *,
    engine: Any,
    rpc_registry: Optional[Any] = None,
    rest_prefix: str = "/trand",
    token_store: Optional[TokenStore] = None,
    rpc_identity: Optional[Callable[[], Address]] = None,
) -> None:
    """
    Mount REST and, optionally, JSON-RPC methods on ``app``.

    Parameters
    ----------
    app : FastAPI
        The main application instance.
    engine : Engine
        The engine whose operations are exposed.
    rpc_registry : Optional[Any]
        If provided, JSON-RPC methods are registered via a duck-typed
        ``.add_method/.add/.register/.method`` API.
    rest_prefix : str
        Prefix for REST endpoints (default: '/trand').
    token_store : Optional[TokenStore]
        Bearer tokens for the caller-bound REST routes. Defaults to
        :meth:`TokenStore.from_environ`.
    rpc_identity : Optional[Callable[[], str]]
        Address the caller-bound JSON-RPC methods act as. Without it those
        methods are not registered.
    """
    store = token_store if token_store is not None else TokenStore.from_environ()
    app.include_router(get_router(engine, prefix=rest_prefix, token_store=store))
    if rpc_registry is not None:
        bind_jsonrpc(engine, rpc_registry, rpc_identity)
    logger.info("mounted threshold randomness endpoints at %s", rest_prefix)


__all__ = ["mount_trand_rpc", "get_router", "bind_jsonrpc", "RequestReq", "SignatureReq", "FulfillReq"]
