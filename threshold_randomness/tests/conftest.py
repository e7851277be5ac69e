from typing import Any, List, Optional, Tuple

import pytest
from prometheus_client import CollectorRegistry

from threshold_randomness.config import EngineConfig
from threshold_randomness.dispatch import consume
from threshold_randomness.engine import Engine
from threshold_randomness.metrics import Metrics
from threshold_randomness.schemes.bls_bn254 import derive_public_key

SECRET_KEY = 0x2A5F_10C3_7B
ADMIN = "0x" + "ad" * 20
RELAYER = "0x" + "5e" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20


@pytest.fixture(scope="session")
def public_key() -> bytes:
    return derive_public_key(SECRET_KEY)


@pytest.fixture
def metrics() -> Metrics:
    return Metrics(registry=CollectorRegistry())


@pytest.fixture
def engine(public_key: bytes, metrics: Metrics) -> Engine:
    return Engine(public_key, admin=ADMIN, relayer=RELAYER, config=EngineConfig(), metrics=metrics)


class Consumer:
    """Records every randomness delivery; optionally burns units or fails."""

    def __init__(self, units: int = 0, fail: Optional[Exception] = None) -> None:
        self.units = units
        self.fail = fail
        self.received: List[Tuple[int, bytes]] = []

    def receive_randomness(self, request_id: int, randomness: bytes) -> None:
        self.received.append((request_id, randomness))
        if self.units:
            consume(self.units)
        if self.fail is not None:
            raise self.fail


class SignatureSink:
    """Requester of raw signing requests."""

    def __init__(self) -> None:
        self.received: List[Tuple[int, bytes]] = []

    def receive_signature(self, request_id: int, signature: bytes) -> None:
        self.received.append((request_id, signature))


class Wallet:
    """Payout recipient; ``on_payment`` runs inside the paying operation."""

    def __init__(self, on_payment: Any = None) -> None:
        self.payments: List[int] = []
        self.on_payment = on_payment

    def receive_payment(self, amount: int) -> None:
        self.payments.append(amount)
        if self.on_payment is not None:
            self.on_payment(amount)


def sign_request(engine: Engine, request_id: int, secret_key: int = SECRET_KEY) -> bytes:
    req = engine.get_request(request_id)
    assert req is not None
    return engine.scheme.sign(secret_key, req.message)
