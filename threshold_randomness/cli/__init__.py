"""
threshold_randomness.cli
------------------------

Operator CLI for a running engine, over JSON-RPC.

Commands:
  - params        : Show engine configuration, public key and coordinator.
  - request       : Request randomness (direct prepayment or subscription).
  - sign-request  : Raw signing request, optionally with a condition.
  - show          : Show a randomness request and its randomness, if any.
  - in-flight     : Is a request still in flight?
  - ids           : List unfulfilled / fulfilled / errored ids.
  - price         : Estimate the price for a callback budget.
  - subscription  : Show a subscription.
  - fulfill       : Submit a threshold signature (relayer).
  - retry         : Retry a failed callback.

The node answers ``request``, ``sign-request`` and ``fulfill`` as its own
configured identity; the CLI cannot name a caller.

Environment:
  TRAND_RPC_URL may be set to override the default RPC endpoint.

Example:
  python -m threshold_randomness.cli price --budget 100000
  python -m threshold_randomness.cli ids --state errored
"""

from __future__ import annotations

import json
import os
import sys
from typing import Any, Dict, Optional

import requests
import typer

__all__ = ["app", "main"]

_DEFAULT_RPC = os.getenv("TRAND_RPC_URL") or "http://127.0.0.1:8545"


class RpcError(RuntimeError):
    pass


def _rpc_call(url: str, method: str, params: Optional[Dict[str, Any]] = None, timeout: float = 30.0) -> Any:
    """Minimal JSON-RPC 2.0 helper; named params."""
    body = {"jsonrpc": "2.0", "id": 1, "method": method, "params": dict(params or {})}
    try:
        r = requests.post(url, json=body, timeout=timeout)
    except requests.RequestException as e:
        raise RpcError(f"RPC POST failed: {e}") from e
    if r.status_code != 200:
        raise RpcError(f"RPC error HTTP {r.status_code}: {r.text}")
    try:
        data = r.json()
    except ValueError as e:
        raise RpcError(f"RPC response not JSON: {r.text}") from e
    if data.get("error"):
        raise RpcError(f"RPC error: {json.dumps(data['error'], indent=2)}")
    return data.get("result")


app = typer.Typer(
    name="trand",
    help="Threshold randomness engine CLI.",
    no_args_is_help=True,
    add_completion=False,
)


def _opt_rpc() -> str:
    return typer.Option(_DEFAULT_RPC, "--rpc", help=f"JSON-RPC endpoint (default: {_DEFAULT_RPC})")  # type: ignore[return-value]


def _emit(rpc: str, method: str, params: Optional[Dict[str, Any]] = None) -> None:
    try:
        res = _rpc_call(rpc, method, params)
    except RpcError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(res, indent=2))


@app.command("params")
def cmd_params(rpc: str = _opt_rpc()) -> None:
    """Show engine configuration, public key and coordinator address."""
    _emit(rpc, "trand.getParams")


@app.command("request")
def cmd_request(
    budget: int = typer.Option(..., "--budget", "-b", min=0, help="Callback compute budget."),
    sub_id: int = typer.Option(0, "--sub", "-s", min=0, help="Subscription id (0 = direct funding)."),
    prepayment: int = typer.Option(0, "--prepay", "-p", min=0, help="Attached prepayment (direct funding)."),
    rpc: str = _opt_rpc(),
) -> None:
    """Request randomness."""
    _emit(rpc, "trand.requestRandomness", {"budget": budget, "sub_id": sub_id, "prepayment": prepayment})


@app.command("sign-request")
def cmd_sign_request(
    message: str = typer.Option(..., "--message", "-m", help="0x-hex message to be signed."),
    condition: str = typer.Option("0x", "--condition", help="0x-hex condition, e.g. an unlock time word."),
    scheme_id: Optional[str] = typer.Option(None, "--scheme", help="Scheme id (default: the engine's)."),
    rpc: str = _opt_rpc(),
) -> None:
    """Submit a raw signing request."""
    params: Dict[str, Any] = {"message": message, "condition": condition}
    if scheme_id is not None:
        params["scheme_id"] = scheme_id
    _emit(rpc, "trand.requestSignature", params)


@app.command("show")
def cmd_show(
    request_id: int = typer.Argument(..., min=1, help="Request id."),
    rpc: str = _opt_rpc(),
) -> None:
    """Show a randomness request (and its randomness once fulfilled)."""
    _emit(rpc, "trand.getRandomnessRequest", {"id": request_id})


@app.command("in-flight")
def cmd_in_flight(
    request_id: int = typer.Argument(..., min=1, help="Request id."),
    rpc: str = _opt_rpc(),
) -> None:
    """Is the request still unfulfilled or errored?"""
    _emit(rpc, "trand.isInFlight", {"id": request_id})


@app.command("ids")
def cmd_ids(
    state: str = typer.Option("unfulfilled", "--state", help="unfulfilled | fulfilled | errored"),
    rpc: str = _opt_rpc(),
) -> None:
    """List request ids in a given state."""
    _emit(rpc, "trand.getRequestIds", {"state": state})


@app.command("price")
def cmd_price(
    budget: int = typer.Option(..., "--budget", "-b", min=0, help="Callback compute budget."),
    unit_price: Optional[int] = typer.Option(None, "--unit-price", min=0, help="Override the unit price."),
    rpc: str = _opt_rpc(),
) -> None:
    """Estimate the price of a request."""
    _emit(rpc, "trand.estimatePrice", {"budget": budget, "unit_price": unit_price})


@app.command("subscription")
def cmd_subscription(
    sub_id: int = typer.Argument(..., min=1, help="Subscription id."),
    rpc: str = _opt_rpc(),
) -> None:
    """Show a subscription's owner, balance and consumers."""
    _emit(rpc, "trand.getSubscription", {"sub_id": sub_id})


@app.command("fulfill")
def cmd_fulfill(
    request_id: int = typer.Argument(..., min=1, help="Request id."),
    signature: str = typer.Option(..., "--signature", "-g", help="0x-hex 64-byte G1 signature."),
    rpc: str = _opt_rpc(),
) -> None:
    """Submit a threshold signature for a request."""
    _emit(rpc, "trand.fulfill", {"id": request_id, "signature": signature})


@app.command("retry")
def cmd_retry(
    request_id: int = typer.Argument(..., min=1, help="Request id."),
    rpc: str = _opt_rpc(),
) -> None:
    """Retry delivery for a request whose callback failed."""
    _emit(rpc, "trand.retryCallback", {"id": request_id})


def main() -> None:  # pragma: no cover - thin wrapper
    """Entry-point to run as `python -m threshold_randomness.cli`."""
    try:
        app(prog_name="trand")
    except KeyboardInterrupt:
        typer.echo("", err=True)
        sys.exit(130)


if __name__ == "__main__":  # pragma: no cover
    main()
