"""
Randomness coordinator.

Turns a paid randomness request into a signing request and, once the
threshold signature is verified, turns the signature into randomness:

    request():
        FeeAccountant.register_request   (admission + payment check)
        nonce += 1
        message = keccak256(abi.encode(uint256 nonce, address consumer))
        RequestLedger.create(scheme, message, b"", coordinator address)
        FeeAccountant.open_billing(id)

    receive_signature(id, σ):          (called after the ledger verified σ)
        randomness = keccak256(σ)
        deliver consumer.receive_randomness(id, randomness) with the request's budget
        charge once, whatever the callback did

The signature is unpredictable until the threshold group produces it and
unique afterwards, so its hash is unbiased and cannot be ground by the
requester. ``receive_signature`` returns the consumer's delivery outcome so
the ledger can park failed deliveries in its errored set; a retry re-runs
delivery and finds the request already charged.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .crypto.hash import abi_address, abi_word, keccak256
from .dispatch import CallbackDispatcher
from .errors import UnknownRequest
from .fees.accountant import FeeAccountant
from .fees.pricing import dispatch_reserve
from .journal import Journal
from .ledger import RequestLedger
from .metrics import METRICS, Metrics
from .types.core import Address, DeliveryResult, RandomnessRequest, normalize_address, require_target

logger = logging.getLogger(__name__)

CALLBACK_METHOD = "receive_randomness"


def message_from(nonce: int, requester: Address) -> bytes:
    """keccak256(abi.encode(nonce, requester)), the bytes the threshold group signs."""
    return keccak256(abi_word(nonce) + abi_address(requester))


def randomness_from(signature: bytes) -> bytes:
    return keccak256(signature)


class RandomnessCoordinator:
    def __init__(
        self,
        *,
        address: Address,
        scheme_id: str,
        ledger: RequestLedger,
        accountant: FeeAccountant,
        dispatcher: CallbackDispatcher,
        journal: Journal,
        metrics: Metrics = METRICS,
    ) -> None:
        self.address = normalize_address(address)
        self.scheme_id = scheme_id
        self._ledger = ledger
        self._accountant = accountant
        self._dispatcher = dispatcher
        self._journal = journal
        self._metrics = metrics
        self._requests: Dict[int, RandomnessRequest] = {}
        self.nonce = 0

    def request(self, consumer: Address, budget: int, sub_id: int = 0, prepayment: int = 0) -> int:
        consumer = require_target(consumer, "consumer")
        res = self._accountant.register_request(consumer, budget, sub_id, prepayment)

        nonce = self.nonce + 1
        self._journal.assign(self, "nonce", nonce)
        message = message_from(nonce, consumer)
        request_id = self._ledger.create(self.scheme_id, message, b"", self.address)

        self._journal.put(
            self._requests,
            request_id,
            RandomnessRequest(
                nonce=nonce,
                requester=consumer,
                sub_id=sub_id,
                callback_budget=budget,
                prepaid=res.prepaid,
                request_id=request_id,
                message=message,
            ),
        )
        self._accountant.open_billing(request_id, res)
        self._metrics.record_request(res.funding)
        logger.info(
            "coordinator: request %d nonce=%d consumer=%s sub=%d budget=%d",
            request_id, nonce, consumer, sub_id, budget,
        )
        return request_id

    def receive_signature(self, request_id: int, signature: bytes, unit_price: Optional[int] = None) -> DeliveryResult:
        req = self._requests.get(request_id)
        if req is None:
            raise UnknownRequest(request_id)
        if req.signature != signature:
            self._journal.assign(req, "signature", bytes(signature))

        randomness = randomness_from(signature)
        result = self._dispatcher.deliver(
            req.requester, CALLBACK_METHOD, req.callback_budget, request_id, randomness
        )

        if not self._accountant.is_charged(request_id):
            pricing = self._accountant.pricing
            units = (
                pricing.pairing_check_overhead
                + dispatch_reserve(req.callback_budget, pricing)
                + result.units_used
            )
            record = self._accountant.charge(request_id, units, unit_price)
            self._metrics.record_charge(record.funding)
        return result

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_request(self, request_id: int) -> Optional[RandomnessRequest]:
        return self._requests.get(request_id)

    def get_all_requests(self) -> List[RandomnessRequest]:
        return [self._requests[i] for i in sorted(self._requests)]

    def is_in_flight(self, request_id: int) -> bool:
        return self._ledger.is_in_flight(request_id)

    def randomness(self, request_id: int) -> Optional[bytes]:
        req = self._requests.get(request_id)
        if req is None or not req.signature:
            return None
        return randomness_from(req.signature)


__all__ = ["RandomnessCoordinator", "message_from", "randomness_from", "CALLBACK_METHOD"]
