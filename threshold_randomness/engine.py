"""
Engine: owns every table and exposes the external interface.

One ``Engine`` holds its own journal, scheme registry, ledger, accountant,
coordinator, dispatcher, handler directory and custody, so independent
instances can live side by side (tests build one per case).

Roles
-----
- ``admin``   : pricing, enable/disable, scheme registration, fee withdrawal,
                forced subscription cancellation
- ``relayer`` : forwards threshold signatures (``fulfill``)
- subscription owners manage their own subscriptions

Atomicity
---------
Every public operation runs under the engine ``RLock`` inside
``journal.atomic()``. If it raises, nothing it changed survives. Callbacks
run in a nested savepoint (see ``dispatch``), so a failing consumer only
loses its own changes. Callbacks may re-enter the engine; the lock is
reentrant.

Example
-------
    engine = Engine(public_key=pk, admin=ADMIN, relayer=RELAYER)
    engine.register_handler(CONSUMER, MyConsumer())
    rid = engine.request_randomness(CONSUMER, budget=100_000, prepayment=10**7)
    engine.fulfill(RELAYER, rid, signature)
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .config import EngineConfig
from .constants import ZERO_SUBSCRIPTION
from .coordinator import RandomnessCoordinator
from .crypto.hash import keccak256
from .dispatch import CallbackDispatcher, HandlerDirectory
from .errors import ThresholdRandomnessError, Unauthorized, ValidationError, VerificationFailed
from .fees.accountant import POOL_DIRECT, POOL_SUBSCRIPTION, FeeAccountant
from .journal import Journal
from .ledger import RequestLedger
from .metrics import METRICS, Metrics
from .schemes.bls_bn254 import BN254BLSScheme
from .schemes.registry import SignatureScheme, SignatureSchemeRegistry
from .types.core import (
    Address,
    DeliveryResult,
    RandomnessRequest,
    SigningRequest,
    Subscription,
    normalize_address,
)

logger = logging.getLogger(__name__)

SIGNATURE_CALLBACK = "receive_signature"
PAYMENT_CALLBACK = "receive_payment"


def coordinator_address(chain_id: int, application: str) -> Address:
    """Deterministic address the coordinator uses as requester of its signing requests."""
    digest = keccak256(f"{application}:{chain_id}:coordinator".encode("ascii"))
    return "0x" + digest[12:].hex()


class Custody:
    """
    Balances paid out by the engine (refunds and fee withdrawals).

    A recipient with a ``receive_payment(amount)`` handler is notified
    synchronously; if it raises, the paying operation fails and is undone.
    """

    def __init__(self, journal: Journal, directory: HandlerDirectory) -> None:
        self._journal = journal
        self._directory = directory
        self._balances: Dict[Address, int] = {}

    def transfer(self, to: Address, amount: int) -> None:
        to = normalize_address(to)
        self._journal.put(self._balances, to, self._balances.get(to, 0) + amount)
        handler = self._directory.get(to)
        hook = getattr(handler, PAYMENT_CALLBACK, None) if handler is not None else None
        if callable(hook):
            hook(amount)

    def balance_of(self, address: Address) -> int:
        return self._balances.get(normalize_address(address), 0)

    def dump(self) -> Dict[str, int]:
        return dict(sorted(self._balances.items()))


class Engine:
    def __init__(
        self,
        public_key: Any,
        *,
        admin: Address,
        relayer: Address,
        config: Optional[EngineConfig] = None,
        metrics: Metrics = METRICS,
    ) -> None:
        cfg = config if config is not None else EngineConfig()
        cfg.validate()
        self.config = cfg
        self.admin = normalize_address(admin)
        self.relayer = normalize_address(relayer)
        self._metrics = metrics

        self._lock = threading.RLock()
        self._journal = Journal()
        self._unit_price: Optional[int] = None

        self.handlers = HandlerDirectory()
        self.custody = Custody(self._journal, self.handlers)
        self.registry = SignatureSchemeRegistry()
        self.scheme = BN254BLSScheme.for_chain(cfg.chain_id, public_key, application=cfg.application)
        self.registry.register(cfg.scheme_id, self.scheme)

        self.ledger = RequestLedger(self.registry, self._journal, self._route_signature, metrics=metrics)
        self.accountant = FeeAccountant(self._journal, self.custody.transfer, cfg.pricing)
        self.dispatcher = CallbackDispatcher(self.handlers, self._journal, metrics=metrics)
        self.coordinator = RandomnessCoordinator(
            address=coordinator_address(cfg.chain_id, cfg.application),
            scheme_id=cfg.scheme_id,
            ledger=self.ledger,
            accountant=self.accountant,
            dispatcher=self.dispatcher,
            journal=self._journal,
            metrics=metrics,
        )
        logger.info(
            "engine: chain=%d app=%s scheme=%s coordinator=%s",
            cfg.chain_id, cfg.application, cfg.scheme_id, self.coordinator.address,
        )

    # ------------------------------------------------------------------ #
    # Plumbing
    # ------------------------------------------------------------------ #

    @contextmanager
    def _op(self) -> Iterator[None]:
        with self._lock, self._journal.atomic():
            yield

    def _require(self, caller: Address, role: str) -> None:
        expected = self.admin if role == "admin" else self.relayer
        if normalize_address(caller) != expected:
            raise Unauthorized(caller, role=role)

    def _route_signature(self, request_id: int, requester: Address, signature: bytes) -> DeliveryResult:
        if requester == self.coordinator.address:
            return self.coordinator.receive_signature(request_id, signature, self._unit_price)
        return self.dispatcher.deliver(requester, SIGNATURE_CALLBACK, None, request_id, signature)

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def request_randomness(
        self, caller: Address, budget: int, sub_id: int = ZERO_SUBSCRIPTION, prepayment: int = 0
    ) -> int:
        with self._op():
            return self.coordinator.request(caller, budget, sub_id, prepayment)

    def request_signature(
        self, caller: Address, message: bytes, condition: bytes = b"", scheme_id: Optional[str] = None
    ) -> int:
        """Raw signing request; the signature is delivered to ``caller.receive_signature``."""
        with self._op():
            return self.ledger.create(scheme_id or self.config.scheme_id, message, condition, caller)

    def fulfill(
        self, caller: Address, request_id: int, signature: bytes, unit_price: Optional[int] = None
    ) -> DeliveryResult:
        try:
            with self._op():
                self._require(caller, "relayer")
                self._unit_price = unit_price
                try:
                    result = self.ledger.fulfill(request_id, signature)
                finally:
                    self._unit_price = None
        except VerificationFailed:
            self._metrics.record_fulfillment("bad_signature")
            raise
        except ThresholdRandomnessError:
            self._metrics.record_fulfillment("invalid")
            raise
        self._metrics.record_fulfillment("delivered" if result.success else "errored")
        return result

    def retry_callback(self, request_id: int) -> DeliveryResult:
        with self._op():
            result = self.ledger.retry(request_id)
        self._metrics.record_retry("delivered" if result.success else "errored")
        return result

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_request(self, request_id: int) -> Optional[SigningRequest]:
        return self.ledger.get_request(request_id)

    def get_randomness_request(self, request_id: int) -> Optional[RandomnessRequest]:
        return self.coordinator.get_request(request_id)

    def get_randomness(self, request_id: int) -> Optional[bytes]:
        return self.coordinator.randomness(request_id)

    def get_all_requests(self) -> List[SigningRequest]:
        return self.ledger.get_all_requests()

    def is_in_flight(self, request_id: int) -> bool:
        return self.ledger.is_in_flight(request_id)

    def count_unfulfilled(self) -> int:
        return self.ledger.count_unfulfilled()

    def unfulfilled_ids(self) -> List[int]:
        return self.ledger.unfulfilled_ids()

    def fulfilled_ids(self) -> List[int]:
        return self.ledger.fulfilled_ids()

    def errored_ids(self) -> List[int]:
        return self.ledger.errored_ids()

    def estimate_price(self, budget: int, unit_price: Optional[int] = None) -> int:
        if unit_price is None:
            return self.accountant.calculate_request_price(budget)
        return self.accountant.estimate_price(budget, unit_price)

    @property
    def public_key(self) -> Any:
        return self.scheme.public_key

    @property
    def public_key_bytes(self) -> bytes:
        return self.scheme.public_key_bytes

    # ------------------------------------------------------------------ #
    # Admin
    # ------------------------------------------------------------------ #

    def set_config(self, caller: Address, **fields: Any) -> None:
        with self._op():
            self._require(caller, "admin")
            self.accountant.set_config(**fields)

    def disable(self, caller: Address) -> None:
        with self._op():
            self._require(caller, "admin")
            self.accountant.disable()

    def enable(self, caller: Address) -> None:
        with self._op():
            self._require(caller, "admin")
            self.accountant.enable()

    def register_scheme(self, caller: Address, scheme_id: str, scheme: SignatureScheme) -> None:
        with self._op():
            self._require(caller, "admin")
            self.registry.register(scheme_id, scheme)

    def withdraw_subscription_fees(self, caller: Address, recipient: Address, amount: Optional[int] = None) -> int:
        with self._op():
            self._require(caller, "admin")
            return self.accountant.withdraw(POOL_SUBSCRIPTION, recipient, amount)

    def withdraw_direct_fees(self, caller: Address, recipient: Address, amount: Optional[int] = None) -> int:
        with self._op():
            self._require(caller, "admin")
            return self.accountant.withdraw(POOL_DIRECT, recipient, amount)

    def owner_cancel_subscription(self, caller: Address, sub_id: int) -> int:
        with self._op():
            self._require(caller, "admin")
            return self.accountant.owner_cancel_subscription(sub_id)

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #

    def create_subscription(self, caller: Address) -> int:
        with self._op():
            return self.accountant.create_subscription(caller)

    def fund_subscription(self, caller: Address, sub_id: int, amount: int) -> int:
        with self._op():
            return self.accountant.fund_subscription(sub_id, amount)

    def add_consumer(self, caller: Address, sub_id: int, consumer: Address) -> None:
        with self._op():
            self.accountant.add_consumer(sub_id, consumer, caller)

    def remove_consumer(self, caller: Address, sub_id: int, consumer: Address) -> None:
        with self._op():
            self.accountant.remove_consumer(sub_id, consumer, caller)

    def request_subscription_owner_transfer(self, caller: Address, sub_id: int, new_owner: Address) -> None:
        with self._op():
            self.accountant.request_owner_transfer(sub_id, new_owner, caller)

    def accept_subscription_owner_transfer(self, caller: Address, sub_id: int) -> None:
        with self._op():
            self.accountant.accept_owner_transfer(sub_id, caller)

    def cancel_subscription(self, caller: Address, sub_id: int, to: Optional[Address] = None) -> int:
        with self._op():
            return self.accountant.cancel_subscription(sub_id, to or caller, caller)

    def get_subscription(self, sub_id: int) -> Subscription:
        return self.accountant.get_subscription(sub_id)

    def pending_request_exists(self, sub_id: int) -> bool:
        return self.accountant.pending_request_exists(sub_id)

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    def register_handler(self, address: Address, handler: Any) -> Address:
        addr = normalize_address(address)
        if addr == self.coordinator.address:
            raise ValidationError("address is reserved for the coordinator", details={"address": addr})
        return self.handlers.register(addr, handler)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "config": self.config.to_dict(),
                "schemes": self.registry.scheme_ids(),
                "coordinator": self.coordinator.address,
                "lastRequestId": self.ledger.last_request_id,
                "unfulfilled": self.ledger.unfulfilled_ids(),
                "fulfilled": self.ledger.fulfilled_ids(),
                "errored": self.ledger.errored_ids(),
                "fees": self.accountant.dump(),
                "custody": self.custody.dump(),
            }


__all__ = ["Engine", "Custody", "coordinator_address", "SIGNATURE_CALLBACK", "PAYMENT_CALLBACK"]
