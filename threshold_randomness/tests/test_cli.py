import json
from typing import Any, Dict, List

import pytest
import requests
from typer.testing import CliRunner

from threshold_randomness import cli

RPC = "http://rpc.test:8545"


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)

    def json(self) -> Any:
        return self.payload


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> List[Dict[str, Any]]:
    seen: List[Dict[str, Any]] = []

    def fake_post(url: str, json: Dict[str, Any], timeout: float) -> FakeResponse:
        seen.append({"url": url, **json})
        return FakeResponse({"jsonrpc": "2.0", "id": json["id"], "result": {"echo": json["method"]}})

    monkeypatch.setattr(cli.requests, "post", fake_post)
    return seen


runner = CliRunner()


def test_price_command(calls) -> None:
    res = runner.invoke(cli.app, ["price", "--budget", "5000", "--rpc", RPC])
    assert res.exit_code == 0, res.output
    assert json.loads(res.output) == {"echo": "trand.estimatePrice"}
    assert calls[0]["url"] == RPC
    assert calls[0]["params"] == {"budget": 5000, "unit_price": None}


def test_request_command_sends_named_params(calls) -> None:
    res = runner.invoke(cli.app, ["request", "-b", "100", "-s", "3", "--rpc", RPC])
    assert res.exit_code == 0, res.output
    assert calls[0]["method"] == "trand.requestRandomness"
    assert calls[0]["params"] == {"budget": 100, "sub_id": 3, "prepayment": 0}


def test_request_command_has_no_caller_option(calls) -> None:
    res = runner.invoke(cli.app, ["request", "-c", "0x" + "ab" * 20, "-b", "1", "--rpc", RPC])
    assert res.exit_code != 0
    assert calls == []


def test_sign_request_command(calls) -> None:
    unlock = "0x" + (1_893_456_000).to_bytes(32, "big").hex()
    res = runner.invoke(cli.app, ["sign-request", "-m", "0x6d7367", "--condition", unlock, "--rpc", RPC])
    assert res.exit_code == 0, res.output
    assert calls[0]["method"] == "trand.requestSignature"
    assert calls[0]["params"] == {"message": "0x6d7367", "condition": unlock}

    runner.invoke(cli.app, ["sign-request", "-m", "0x01", "--scheme", "BN254", "--rpc", RPC])
    assert calls[1]["params"] == {"message": "0x01", "condition": "0x", "scheme_id": "BN254"}


@pytest.mark.parametrize(
    "argv,method,params",
    [
        (["show", "4"], "trand.getRandomnessRequest", {"id": 4}),
        (["in-flight", "4"], "trand.isInFlight", {"id": 4}),
        (["ids", "--state", "errored"], "trand.getRequestIds", {"state": "errored"}),
        (["subscription", "2"], "trand.getSubscription", {"sub_id": 2}),
        (["retry", "9"], "trand.retryCallback", {"id": 9}),
        (["params"], "trand.getParams", {}),
    ],
)
def test_commands_map_to_rpc_methods(calls, argv, method, params) -> None:
    res = runner.invoke(cli.app, argv + ["--rpc", RPC])
    assert res.exit_code == 0, res.output
    assert calls[0]["method"] == method
    assert calls[0]["params"] == params


def test_fulfill_command(calls) -> None:
    sig = "0x" + "11" * 64
    res = runner.invoke(cli.app, ["fulfill", "7", "-g", sig, "--rpc", RPC])
    assert res.exit_code == 0, res.output
    assert calls[0]["params"] == {"id": 7, "signature": sig}


def test_rpc_error_exits_nonzero(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_post(url: str, json: Dict[str, Any], timeout: float) -> FakeResponse:
        return FakeResponse({"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "nope"}})

    monkeypatch.setattr(cli.requests, "post", fake_post)
    res = runner.invoke(cli.app, ["params", "--rpc", RPC])
    assert res.exit_code == 1


def test_transport_failure_exits_nonzero(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_post(url: str, json: Dict[str, Any], timeout: float) -> FakeResponse:
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(cli.requests, "post", fake_post)
    res = runner.invoke(cli.app, ["show", "1", "--rpc", RPC])
    assert res.exit_code == 1


def test_http_error_status(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli.requests, "post", lambda url, json, timeout: FakeResponse({}, status_code=502))
    res = runner.invoke(cli.app, ["params", "--rpc", RPC])
    assert res.exit_code == 1
