"""
Request ledger: one row per signing request plus three id index sets.

Lifecycle
---------
    create()  ─► unfulfilled
    fulfill() ─► fulfilled            (delivery succeeded)
              └► errored              (delivery failed; signature kept)
    retry()   ─► errored → fulfilled  (delivery succeeded)

Every created id lives in exactly one of the three sets, so
``is_in_flight(id) ⇔ id ∈ unfulfilled ∪ errored``. Rows are never deleted.

A signature is verified exactly once, in ``fulfill``. Verification failure
raises before any mutation. Delivery failure does not raise: the request
stays fulfilled (the signature is valid and stored) and its id is parked in
``errored`` for a later ``retry``. ``fulfill`` on an errored id is refused so
that the fulfillment side effects (notably charging) cannot run twice.

Delivery itself is injected (``deliver(request_id, requester, signature)``)
so the ledger does not know how requesters are reached.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Set

from .constants import MAX_CONDITION_BYTES, MAX_MESSAGE_BYTES, MIN_MESSAGE_BYTES
from .errors import (
    InvalidCondition,
    InvalidMessage,
    RequestAlreadyFulfilled,
    RequestNotErrored,
    ThresholdRandomnessError,
    UnknownRequest,
    UnsupportedScheme,
    VerificationFailed,
)
from .journal import Journal
from .metrics import METRICS, Metrics
from .schemes.registry import SignatureSchemeRegistry
from .types.core import Address, DeliveryResult, SigningRequest, require_target

logger = logging.getLogger(__name__)

SignatureSink = Callable[[int, Address, bytes], DeliveryResult]


def _check_message(message: bytes) -> bytes:
    if not isinstance(message, (bytes, bytearray)):
        raise InvalidMessage("message must be bytes")
    if not (MIN_MESSAGE_BYTES <= len(message) <= MAX_MESSAGE_BYTES):
        raise InvalidMessage(
            "message length out of range",
            details={"len": len(message), "min": MIN_MESSAGE_BYTES, "max": MAX_MESSAGE_BYTES},
        )
    return bytes(message)


def _check_condition(condition: bytes) -> bytes:
    if not isinstance(condition, (bytes, bytearray)):
        raise InvalidCondition("condition must be bytes")
    if len(condition) > MAX_CONDITION_BYTES:
        raise InvalidCondition(
            "condition too long", details={"len": len(condition), "max": MAX_CONDITION_BYTES}
        )
    if condition and not any(condition):
        raise InvalidCondition("non-empty condition must not be all zero bytes")
    return bytes(condition)


class RequestLedger:
    def __init__(
        self,
        registry: SignatureSchemeRegistry,
        journal: Journal,
        deliver: SignatureSink,
        *,
        metrics: Metrics = METRICS,
    ) -> None:
        self._registry = registry
        self._journal = journal
        self._deliver = deliver
        self._metrics = metrics
        self._requests: Dict[int, SigningRequest] = {}
        self._unfulfilled: Set[int] = set()
        self._fulfilled: Set[int] = set()
        self._errored: Set[int] = set()
        self.last_request_id = 0

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def create(self, scheme_id: str, message: bytes, condition: bytes, requester: Address) -> int:
        if not self._registry.is_supported(scheme_id):
            raise UnsupportedScheme(scheme_id)
        message = _check_message(message)
        condition = _check_condition(condition)
        requester = require_target(requester, "requester")

        scheme = self._registry.resolve(scheme_id)
        point = scheme.hash_message(message)

        j = self._journal
        request_id = self.last_request_id + 1
        j.assign(self, "last_request_id", request_id)
        j.put(
            self._requests,
            request_id,
            SigningRequest(
                id=request_id,
                requester=requester,
                message=message,
                message_point=point,
                condition=condition,
                scheme_id=scheme_id,
            ),
        )
        j.set_add(self._unfulfilled, request_id)
        logger.info("ledger: created request %d (scheme=%s requester=%s)", request_id, scheme_id, requester)
        return request_id

    def fulfill(self, request_id: int, signature: bytes) -> DeliveryResult:
        req = self._requests.get(request_id)
        if req is None:
            raise UnknownRequest(request_id)
        if request_id not in self._unfulfilled:
            raise RequestAlreadyFulfilled(request_id)

        signature = bytes(signature)
        scheme = self._registry.resolve(req.scheme_id)
        with self._metrics.verify_timer():
            try:
                holds, computed = scheme.verify(req.message_point, signature)
            except ThresholdRandomnessError:
                raise
            except Exception as e:
                logger.warning("ledger: scheme %s raised during verify of request %d: %r", req.scheme_id, request_id, e)
                raise VerificationFailed(request_id, pairing_holds=False, computation_ok=False) from e
        if not (holds and computed):
            logger.info(
                "ledger: rejected signature for request %d (pairing_holds=%s computation_ok=%s)",
                request_id, holds, computed,
            )
            raise VerificationFailed(request_id, pairing_holds=holds, computation_ok=computed)

        j = self._journal
        j.assign(req, "signature", signature)
        j.assign(req, "fulfilled", True)
        j.set_discard(self._unfulfilled, request_id)

        result = self._deliver(request_id, req.requester, signature)
        if result.success:
            j.set_discard(self._errored, request_id)
            j.set_add(self._fulfilled, request_id)
            logger.info("ledger: request %d fulfilled", request_id)
        else:
            j.set_add(self._errored, request_id)
            logger.warning(
                "ledger: request %d verified but delivery failed (%s); parked for retry",
                request_id, result.reason,
            )
        return result

    def retry(self, request_id: int) -> DeliveryResult:
        if request_id not in self._errored:
            if request_id not in self._requests:
                raise UnknownRequest(request_id)
            raise RequestNotErrored(request_id)
        req = self._requests[request_id]

        result = self._deliver(request_id, req.requester, req.signature)
        if result.success:
            j = self._journal
            j.set_discard(self._errored, request_id)
            j.set_add(self._fulfilled, request_id)
            logger.info("ledger: retry delivered request %d", request_id)
        else:
            logger.warning("ledger: retry for request %d failed again (%s)", request_id, result.reason)
        return result

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def is_in_flight(self, request_id: int) -> bool:
        return request_id in self._unfulfilled or request_id in self._errored

    def get_request(self, request_id: int) -> Optional[SigningRequest]:
        return self._requests.get(request_id)

    def get_all_requests(self) -> List[SigningRequest]:
        return [self._requests[i] for i in sorted(self._requests)]

    def count_unfulfilled(self) -> int:
        return len(self._unfulfilled)

    def unfulfilled_ids(self) -> List[int]:
        return sorted(self._unfulfilled)

    def fulfilled_ids(self) -> List[int]:
        return sorted(self._fulfilled)

    def errored_ids(self) -> List[int]:
        return sorted(self._errored)

    def __len__(self) -> int:
        return len(self._requests)


__all__ = ["RequestLedger", "SignatureSink"]
