"""
FeeAccountant: subscriptions, request reservations, charging and fee pools.

Two ways to pay for a request:

  • direct funding (``sub_id == 0``): the requester attaches a prepayment of at
    least the estimated price; it is moved to the *direct* pool on charge.
  • subscription funding: the subscription owner deposits a balance that
    registered consumers draw on; each charge debits the actual metered cost
    and credits the *subscription* pool.

The two pools are kept apart so withdrawing one never touches the other.

Invariants
----------
- ``charge(id)`` succeeds at most once per request id (``AlreadyCharged``).
- Each consumer's ``pending`` counter is incremented by ``register_request``
  and decremented by the matching ``charge``; it never goes negative and
  always equals that consumer's registered-but-uncharged requests.
- A subscription's ``reserved`` is the sum of the estimates of its admitted,
  uncharged requests and never exceeds its ``balance``; admission requires
  ``balance - reserved >= estimate`` and each charge releases its own estimate.
  Cancelling a subscription drops its reservations with it.
- ``total_balance`` == Σ subscription balances + subscription pool.
- Withdrawals zero the pool before paying out and hold a per-pool lock, so a
  payout that re-enters ``withdraw`` for the same pool is refused.

All mutation goes through the engine journal.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import PricingConfig
from ..constants import MAX_CONSUMERS, ZERO_SUBSCRIPTION
from ..errors import (
    AccountingError,
    AlreadyCharged,
    BudgetTooHigh,
    EngineDisabled,
    InsufficientBalance,
    InsufficientPayment,
    InsufficientPool,
    InvalidConsumer,
    InvalidSubscription,
    NotConfigured,
    PendingRequestExists,
    ReentrantWithdrawal,
    TooManyConsumers,
    Unauthorized,
    UnknownRequest,
    ValidationError,
)
from ..journal import Journal
from ..types.core import Address, ChargeRecord, ConsumerRegistration, Subscription, normalize_address
from .pricing import actual_payment, estimate_price

logger = logging.getLogger(__name__)

Payout = Callable[[Address, int], None]

POOL_SUBSCRIPTION = "subscription"
POOL_DIRECT = "direct"
POOLS = (POOL_SUBSCRIPTION, POOL_DIRECT)


@dataclass(frozen=True)
class Reservation:
    """Admission ticket returned by ``register_request``; bound to a ledger id by ``open_billing``."""

    consumer: Address
    sub_id: int
    callback_budget: int
    estimate: int
    prepaid: int = 0
    consumer_nonce: int = 0

    @property
    def funding(self) -> str:
        return POOL_DIRECT if self.sub_id == ZERO_SUBSCRIPTION else POOL_SUBSCRIPTION


class FeeAccountant:
    def __init__(
        self,
        journal: Journal,
        payout: Payout,
        pricing: Optional[PricingConfig] = None,
    ) -> None:
        self._journal = journal
        self._payout = payout
        self.pricing = pricing if pricing is not None else PricingConfig()
        self.configured = pricing is not None
        self.disabled = False

        self._subs: Dict[int, Subscription] = {}
        self._consumers: Dict[Tuple[int, Address], ConsumerRegistration] = {}
        self.last_sub_id = 0

        self._reservations: Dict[int, Reservation] = {}
        self._charges: Dict[int, ChargeRecord] = {}

        self._pools: Dict[str, int] = {POOL_SUBSCRIPTION: 0, POOL_DIRECT: 0}
        self._pool_locks: Dict[str, threading.Lock] = {p: threading.Lock() for p in POOLS}
        self.total_balance = 0

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    def set_config(self, **changes: Any) -> PricingConfig:
        try:
            cfg = self.pricing.updated(**changes)
        except ValueError as e:
            raise ValidationError(str(e), details={"fields": sorted(changes)}) from e
        self._journal.assign(self, "pricing", cfg)
        self._journal.assign(self, "configured", True)
        logger.info("fees: pricing updated %s", cfg.to_dict())
        return cfg

    def disable(self) -> None:
        self._journal.assign(self, "disabled", True)
        logger.warning("fees: request admission disabled")

    def enable(self) -> None:
        self._journal.assign(self, "disabled", False)
        logger.info("fees: request admission enabled")

    # ------------------------------------------------------------------ #
    # Pricing
    # ------------------------------------------------------------------ #

    def estimate_price(self, budget: int, unit_price: int) -> int:
        return estimate_price(budget, unit_price, self.pricing)

    def calculate_request_price(self, budget: int) -> int:
        return self.estimate_price(budget, self.pricing.price_per_unit)

    # ------------------------------------------------------------------ #
    # Admission & charging
    # ------------------------------------------------------------------ #

    def register_request(
        self, consumer: Address, budget: int, sub_id: int = ZERO_SUBSCRIPTION, prepayment: int = 0
    ) -> Reservation:
        if not self.configured:
            raise NotConfigured("pricing has not been configured")
        if self.disabled:
            raise EngineDisabled("request admission is disabled")
        if not isinstance(budget, int) or budget < 0:
            raise ValidationError("callback budget must be a non-negative int", details={"budget": budget})
        if budget > self.pricing.max_callback_budget:
            raise BudgetTooHigh(budget=budget, maximum=self.pricing.max_callback_budget)
        if prepayment < 0:
            raise ValidationError("prepayment must be >= 0", details={"prepayment": prepayment})
        consumer = normalize_address(consumer)
        estimate = self.calculate_request_price(budget)
        logger.debug("fees: estimate for budget=%d is %d", budget, estimate)

        if sub_id == ZERO_SUBSCRIPTION:
            if prepayment < estimate:
                raise InsufficientPayment(required=estimate, provided=prepayment)
            return Reservation(
                consumer=consumer, sub_id=sub_id, callback_budget=budget, estimate=estimate, prepaid=prepayment
            )

        if prepayment:
            raise ValidationError("subscription requests must not carry a prepayment", details={"sub_id": sub_id})
        sub = self._get_sub(sub_id)
        reg = self._consumers.get((sub_id, consumer))
        if reg is None or not reg.active:
            raise InvalidConsumer(sub_id=sub_id, consumer=consumer)
        if sub.balance - sub.reserved < estimate:
            raise InsufficientBalance(sub_id=sub_id, required=estimate, balance=sub.balance, reserved=sub.reserved)

        j = self._journal
        j.assign(sub, "reserved", sub.reserved + estimate)
        j.assign(reg, "nonce", reg.nonce + 1)
        j.assign(reg, "pending", reg.pending + 1)
        return Reservation(
            consumer=consumer,
            sub_id=sub_id,
            callback_budget=budget,
            estimate=estimate,
            consumer_nonce=reg.nonce,
        )

    def open_billing(self, request_id: int, reservation: Reservation) -> None:
        if request_id in self._reservations:
            raise ValidationError("billing already open for request", details={"request_id": request_id})
        self._journal.put(self._reservations, request_id, reservation)

    def is_charged(self, request_id: int) -> bool:
        return request_id in self._charges

    def get_charge(self, request_id: int) -> Optional[ChargeRecord]:
        return self._charges.get(request_id)

    def charge(self, request_id: int, units_used: int, unit_price: Optional[int] = None) -> ChargeRecord:
        if request_id in self._charges:
            raise AlreadyCharged(request_id)
        res = self._reservations.get(request_id)
        if res is None:
            raise UnknownRequest(request_id, message="no billing opened for request")
        price = self.pricing.price_per_unit if unit_price is None else unit_price
        j = self._journal

        if res.sub_id == ZERO_SUBSCRIPTION:
            j.put(self._pools, POOL_DIRECT, self._pools[POOL_DIRECT] + res.prepaid)
            record = ChargeRecord(
                request_id=request_id, funding=POOL_DIRECT, amount=res.prepaid,
                units_used=units_used, unit_price=price,
            )
        else:
            sub = self._subs.get(res.sub_id)
            if sub is None:
                logger.warning(
                    "fees: subscription %d cancelled while request %d was pending; charge waived",
                    res.sub_id, request_id,
                )
                record = ChargeRecord(
                    request_id=request_id, funding=POOL_SUBSCRIPTION, amount=0,
                    units_used=units_used, unit_price=price, sub_id=res.sub_id, waived=True,
                )
            else:
                payment = actual_payment(units_used, price, self.pricing)
                reserved = sub.reserved - res.estimate
                if reserved < 0:
                    raise AccountingError(
                        "reservation underflow", details={"sub_id": sub.sub_id, "request_id": request_id}
                    )
                # only a price raised after admission can push the payment past the reservation
                if sub.balance - reserved < payment:
                    raise InsufficientBalance(
                        sub_id=sub.sub_id, required=payment, balance=sub.balance, reserved=reserved
                    )
                j.assign(sub, "reserved", reserved)
                j.assign(sub, "balance", sub.balance - payment)
                j.assign(sub, "request_count", sub.request_count + 1)
                j.put(self._pools, POOL_SUBSCRIPTION, self._pools[POOL_SUBSCRIPTION] + payment)
                reg = self._consumers[(res.sub_id, res.consumer)]
                if reg.pending <= 0:
                    raise AccountingError(
                        "pending counter underflow", details={"sub_id": res.sub_id, "consumer": res.consumer}
                    )
                j.assign(reg, "pending", reg.pending - 1)
                record = ChargeRecord(
                    request_id=request_id, funding=POOL_SUBSCRIPTION, amount=payment,
                    units_used=units_used, unit_price=price, sub_id=sub.sub_id,
                )

        j.put(self._charges, request_id, record)
        logger.info(
            "fees: charged request %d %s=%d (units=%d price=%d%s)",
            request_id, record.funding, record.amount, units_used, price, " waived" if record.waived else "",
        )
        return record

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #

    def _get_sub(self, sub_id: int) -> Subscription:
        sub = self._subs.get(sub_id)
        if sub is None:
            raise InvalidSubscription(sub_id)
        return sub

    def _owned_sub(self, sub_id: int, caller: Address) -> Subscription:
        sub = self._get_sub(sub_id)
        if normalize_address(caller) != sub.owner:
            raise Unauthorized(caller, role="subscription owner")
        return sub

    def get_subscription(self, sub_id: int) -> Subscription:
        return self._get_sub(sub_id)

    def get_consumer(self, sub_id: int, consumer: Address) -> Optional[ConsumerRegistration]:
        return self._consumers.get((sub_id, normalize_address(consumer)))

    def subscription_ids(self) -> List[int]:
        return sorted(self._subs)

    def create_subscription(self, owner: Address) -> int:
        owner = normalize_address(owner)
        sub_id = self.last_sub_id + 1
        self._journal.assign(self, "last_sub_id", sub_id)
        self._journal.put(self._subs, sub_id, Subscription(sub_id=sub_id, owner=owner))
        logger.info("fees: created subscription %d for %s", sub_id, owner)
        return sub_id

    def fund_subscription(self, sub_id: int, amount: int) -> int:
        if not isinstance(amount, int) or amount <= 0:
            raise ValidationError("funding amount must be a positive int", details={"amount": amount})
        sub = self._get_sub(sub_id)
        self._journal.assign(sub, "balance", sub.balance + amount)
        self._journal.assign(self, "total_balance", self.total_balance + amount)
        logger.info("fees: subscription %d funded +%d (balance=%d)", sub_id, amount, sub.balance)
        return sub.balance

    def add_consumer(self, sub_id: int, consumer: Address, caller: Address) -> None:
        sub = self._owned_sub(sub_id, caller)
        consumer = normalize_address(consumer)
        if (sub_id, consumer) in self._consumers:
            return
        if len(sub.consumers) >= MAX_CONSUMERS:
            raise TooManyConsumers("subscription consumer limit reached", details={"sub_id": sub_id, "max": MAX_CONSUMERS})
        self._journal.put(self._consumers, (sub_id, consumer), ConsumerRegistration())
        self._journal.append(sub.consumers, consumer)
        logger.info("fees: subscription %d added consumer %s", sub_id, consumer)

    def remove_consumer(self, sub_id: int, consumer: Address, caller: Address) -> None:
        sub = self._owned_sub(sub_id, caller)
        consumer = normalize_address(consumer)
        reg = self._consumers.get((sub_id, consumer))
        if reg is None:
            raise InvalidConsumer(sub_id=sub_id, consumer=consumer)
        if reg.pending:
            raise PendingRequestExists(
                "consumer has pending requests", details={"sub_id": sub_id, "consumer": consumer, "pending": reg.pending}
            )
        self._journal.pop(self._consumers, (sub_id, consumer))
        self._journal.remove(sub.consumers, consumer)
        logger.info("fees: subscription %d removed consumer %s", sub_id, consumer)

    def pending_request_exists(self, sub_id: int) -> bool:
        sub = self._get_sub(sub_id)
        return any(self._consumers[(sub_id, c)].pending for c in sub.consumers)

    def outstanding_requests(self, sub_id: int) -> int:
        """Requests registered against ``sub_id`` that have not been charged yet."""
        return sum(
            1 for rid, res in self._reservations.items() if res.sub_id == sub_id and rid not in self._charges
        )

    def request_owner_transfer(self, sub_id: int, new_owner: Address, caller: Address) -> None:
        sub = self._owned_sub(sub_id, caller)
        self._journal.assign(sub, "pending_owner", normalize_address(new_owner))

    def accept_owner_transfer(self, sub_id: int, caller: Address) -> None:
        sub = self._get_sub(sub_id)
        caller = normalize_address(caller)
        if sub.pending_owner != caller:
            raise Unauthorized(caller, role="pending subscription owner")
        old = sub.owner
        self._journal.assign(sub, "owner", caller)
        self._journal.assign(sub, "pending_owner", None)
        logger.info("fees: subscription %d owner %s -> %s", sub_id, old, caller)

    def cancel_subscription(self, sub_id: int, to: Address, caller: Address) -> int:
        self._owned_sub(sub_id, caller)
        return self._cancel(sub_id, normalize_address(to))

    def owner_cancel_subscription(self, sub_id: int) -> int:
        """Admin path: refund to the current owner."""
        sub = self._get_sub(sub_id)
        return self._cancel(sub_id, sub.owner)

    def _cancel(self, sub_id: int, to: Address) -> int:
        sub = self._get_sub(sub_id)
        refund = sub.balance
        j = self._journal
        for c in list(sub.consumers):
            j.pop(self._consumers, (sub_id, c))
        j.pop(self._subs, sub_id)
        j.assign(self, "total_balance", self.total_balance - refund)
        if refund:
            self._payout(to, refund)
        logger.info("fees: subscription %d cancelled, refunded %d to %s", sub_id, refund, to)
        return refund

    # ------------------------------------------------------------------ #
    # Pools
    # ------------------------------------------------------------------ #

    def pool_balance(self, pool: str) -> int:
        if pool not in self._pools:
            raise ValidationError("unknown pool", details={"pool": pool})
        return self._pools[pool]

    def withdraw(self, pool: str, recipient: Address, amount: Optional[int] = None) -> int:
        if pool not in self._pools:
            raise ValidationError("unknown pool", details={"pool": pool})
        recipient = normalize_address(recipient)
        lock = self._pool_locks[pool]
        if not lock.acquire(blocking=False):
            raise ReentrantWithdrawal(pool)
        try:
            available = self._pools[pool]
            amt = available if amount is None else amount
            if amt < 0 or amt > available:
                raise InsufficientPool(pool=pool, requested=amt, available=available)
            self._journal.put(self._pools, pool, available - amt)
            if pool == POOL_SUBSCRIPTION:
                self._journal.assign(self, "total_balance", self.total_balance - amt)
            if amt:
                self._payout(recipient, amt)
            logger.info("fees: withdrew %d from %s pool to %s", amt, pool, recipient)
            return amt
        finally:
            lock.release()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def dump(self) -> Dict[str, Any]:
        return {
            "configured": self.configured,
            "disabled": self.disabled,
            "pricing": self.pricing.to_dict(),
            "totalBalance": self.total_balance,
            "pools": dict(self._pools),
            "subscriptions": {str(k): v.to_dict() for k, v in sorted(self._subs.items())},
            "charges": {str(k): v.to_dict() for k, v in sorted(self._charges.items())},
        }


__all__ = ["FeeAccountant", "Reservation", "Payout", "POOL_SUBSCRIPTION", "POOL_DIRECT", "POOLS"]
