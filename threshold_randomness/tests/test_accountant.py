from typing import List, Tuple

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from threshold_randomness.config import PricingConfig
from threshold_randomness.constants import MAX_CONSUMERS
from threshold_randomness.errors import (
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
    ValidationError,
)
from threshold_randomness.fees.accountant import POOL_DIRECT, POOL_SUBSCRIPTION, FeeAccountant
from threshold_randomness.journal import Journal

OWNER = "0x" + "0a" * 20
CONSUMER = "0x" + "c0" * 20
OTHER = "0x" + "0b" * 20

# Unit price 1 and no overheads: estimate(b) = b + b // 63 + 1
FLAT = PricingConfig(
    fixed_overhead=0,
    pairing_check_overhead=0,
    dispatch_overhead=0,
    premium_percentage=0,
    price_per_unit=1,
)


class Payouts:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, int]] = []

    def __call__(self, to: str, amount: int) -> None:
        self.sent.append((to, amount))


def mk(pricing=FLAT) -> Tuple[FeeAccountant, Payouts, Journal]:
    j = Journal()
    p = Payouts()
    return FeeAccountant(j, p, pricing), p, j


def funded_sub(acc: FeeAccountant, amount: int = 10_000) -> int:
    sub_id = acc.create_subscription(OWNER)
    acc.fund_subscription(sub_id, amount)
    acc.add_consumer(sub_id, CONSUMER, OWNER)
    return sub_id


# ---------- admission ----------


def test_unconfigured_and_disabled_accountant_refuse_requests() -> None:
    acc = FeeAccountant(Journal(), Payouts())
    with pytest.raises(NotConfigured):
        acc.register_request(CONSUMER, 0, 0, 10**9)
    acc.set_config(flat_fee=0)
    assert acc.configured
    acc.disable()
    with pytest.raises(EngineDisabled):
        acc.register_request(CONSUMER, 0, 0, 10**9)
    acc.enable()
    assert acc.register_request(CONSUMER, 0, 0, 10**9).prepaid == 10**9


def test_budget_ceiling() -> None:
    acc, _, _ = mk(FLAT.updated(max_callback_budget=100))
    with pytest.raises(BudgetTooHigh):
        acc.register_request(CONSUMER, 101, 0, 10**6)
    with pytest.raises(ValidationError):
        acc.register_request(CONSUMER, -1, 0, 10**6)


def test_direct_request_needs_full_prepayment() -> None:
    acc, _, _ = mk()
    est = acc.calculate_request_price(630)
    assert est == 641
    with pytest.raises(InsufficientPayment):
        acc.register_request(CONSUMER, 630, 0, est - 1)
    res = acc.register_request(CONSUMER, 630, 0, est)
    assert res.funding == POOL_DIRECT and res.prepaid == est


def test_subscription_with_zero_balance_is_rejected() -> None:
    acc, _, _ = mk()
    sub_id = acc.create_subscription(OWNER)
    acc.add_consumer(sub_id, CONSUMER, OWNER)
    with pytest.raises(InsufficientBalance):
        acc.register_request(CONSUMER, 0, sub_id)
    assert acc.get_consumer(sub_id, CONSUMER).pending == 0


def test_subscription_admission_checks() -> None:
    acc, _, _ = mk()
    sub_id = funded_sub(acc)
    with pytest.raises(InvalidSubscription):
        acc.register_request(CONSUMER, 0, sub_id + 1)
    with pytest.raises(InvalidConsumer):
        acc.register_request(OTHER, 0, sub_id)
    with pytest.raises(ValidationError):
        acc.register_request(CONSUMER, 0, sub_id, prepayment=5)

    res = acc.register_request(CONSUMER, 63, sub_id)
    assert res.funding == POOL_SUBSCRIPTION
    assert res.estimate == 65
    reg = acc.get_consumer(sub_id, CONSUMER)
    assert (reg.nonce, reg.pending) == (1, 1)
    assert acc.pending_request_exists(sub_id)


# ---------- charging ----------


def test_subscription_charge_runs_exactly_once() -> None:
    acc, _, _ = mk()
    sub_id = funded_sub(acc, 1_000)
    acc.open_billing(1, acc.register_request(CONSUMER, 100, sub_id))

    rec = acc.charge(1, units_used=40)
    assert rec.amount == 40 and not rec.waived
    sub = acc.get_subscription(sub_id)
    assert sub.balance == 960
    assert sub.request_count == 1
    assert acc.pool_balance(POOL_SUBSCRIPTION) == 40
    assert acc.get_consumer(sub_id, CONSUMER).pending == 0
    assert acc.is_charged(1) and acc.get_charge(1) == rec

    with pytest.raises(AlreadyCharged):
        acc.charge(1, units_used=40)
    assert sub.balance == 960


def test_direct_charge_moves_prepayment_to_direct_pool() -> None:
    acc, _, _ = mk()
    acc.open_billing(7, acc.register_request(CONSUMER, 0, 0, 500))
    rec = acc.charge(7, units_used=10_000)
    assert rec.amount == 500
    assert acc.pool_balance(POOL_DIRECT) == 500
    assert acc.pool_balance(POOL_SUBSCRIPTION) == 0


def test_charge_uses_unit_price_at_fulfillment_time() -> None:
    acc, _, _ = mk()
    sub_id = funded_sub(acc, 1_000)
    acc.open_billing(1, acc.register_request(CONSUMER, 10, sub_id))
    assert acc.charge(1, units_used=10, unit_price=3).amount == 30


def test_admission_counts_estimates_already_reserved() -> None:
    acc, _, _ = mk()
    sub_id = funded_sub(acc, 100)
    acc.open_billing(1, acc.register_request(CONSUMER, 50, sub_id))
    assert acc.get_subscription(sub_id).reserved == 51

    with pytest.raises(InsufficientBalance) as ei:
        acc.register_request(CONSUMER, 50, sub_id)
    assert ei.value.details == {"sub_id": sub_id, "required": 51, "balance": 100, "reserved": 51}
    assert acc.get_consumer(sub_id, CONSUMER).pending == 1

    acc.charge(1, units_used=51)
    sub = acc.get_subscription(sub_id)
    assert (sub.balance, sub.reserved) == (49, 0)
    acc.register_request(CONSUMER, 48, sub_id)
    assert sub.reserved == 49


def test_charge_may_use_unreserved_balance_but_not_other_reservations() -> None:
    acc, _, j = mk()
    sub_id = funded_sub(acc, 200)
    acc.open_billing(1, acc.register_request(CONSUMER, 50, sub_id))
    acc.open_billing(2, acc.register_request(CONSUMER, 50, sub_id))
    assert acc.get_subscription(sub_id).reserved == 102

    # price raised after admission: 100 still fits beside request 2's reservation
    assert acc.charge(1, units_used=50, unit_price=2).amount == 100
    sub = acc.get_subscription(sub_id)
    assert (sub.balance, sub.reserved) == (100, 51)

    with pytest.raises(InsufficientBalance):
        with j.atomic():
            acc.charge(2, units_used=50, unit_price=3)
    assert not acc.is_charged(2)
    assert (sub.balance, sub.reserved) == (100, 51)
    assert acc.get_consumer(sub_id, CONSUMER).pending == 1

    assert acc.charge(2, units_used=51).amount == 51
    assert (sub.balance, sub.reserved) == (49, 0)


def test_cancel_drops_reservations() -> None:
    acc, payouts, _ = mk()
    sub_id = funded_sub(acc, 100)
    acc.open_billing(1, acc.register_request(CONSUMER, 50, sub_id))
    assert acc.cancel_subscription(sub_id, OWNER, OWNER) == 100
    assert payouts.sent == [(OWNER, 100)]
    assert acc.charge(1, units_used=51).waived
    assert acc.total_balance == 0


def test_charge_after_cancellation_is_waived() -> None:
    acc, payouts, _ = mk()
    sub_id = funded_sub(acc, 1_000)
    acc.open_billing(1, acc.register_request(CONSUMER, 0, sub_id))
    assert acc.cancel_subscription(sub_id, OWNER, OWNER) == 1_000
    assert payouts.sent == [(OWNER, 1_000)]

    rec = acc.charge(1, units_used=5)
    assert rec.waived and rec.amount == 0
    assert acc.pool_balance(POOL_SUBSCRIPTION) == 0
    with pytest.raises(AlreadyCharged):
        acc.charge(1, units_used=5)


# ---------- subscription management ----------


def test_consumer_management() -> None:
    acc, _, _ = mk()
    sub_id = funded_sub(acc)
    with pytest.raises(Unauthorized):
        acc.add_consumer(sub_id, OTHER, OTHER)
    acc.add_consumer(sub_id, CONSUMER, OWNER)  # idempotent
    assert acc.get_subscription(sub_id).consumers == [CONSUMER]

    acc.open_billing(1, acc.register_request(CONSUMER, 0, sub_id))
    with pytest.raises(PendingRequestExists):
        acc.remove_consumer(sub_id, CONSUMER, OWNER)
    acc.charge(1, units_used=0)
    acc.remove_consumer(sub_id, CONSUMER, OWNER)
    assert acc.get_subscription(sub_id).consumers == []
    with pytest.raises(InvalidConsumer):
        acc.remove_consumer(sub_id, CONSUMER, OWNER)


def test_consumer_limit() -> None:
    acc, _, _ = mk()
    sub_id = acc.create_subscription(OWNER)
    for i in range(MAX_CONSUMERS):
        acc.add_consumer(sub_id, "0x" + f"{i + 1:040x}", OWNER)
    with pytest.raises(TooManyConsumers):
        acc.add_consumer(sub_id, OTHER, OWNER)


def test_owner_transfer_needs_acceptance() -> None:
    acc, _, _ = mk()
    sub_id = funded_sub(acc)
    acc.request_owner_transfer(sub_id, OTHER, OWNER)
    assert acc.get_subscription(sub_id).pending_owner == OTHER
    with pytest.raises(Unauthorized):
        acc.accept_owner_transfer(sub_id, CONSUMER)
    acc.accept_owner_transfer(sub_id, OTHER)
    sub = acc.get_subscription(sub_id)
    assert sub.owner == OTHER and sub.pending_owner is None
    with pytest.raises(Unauthorized):
        acc.cancel_subscription(sub_id, OWNER, OWNER)


def test_admin_cancel_refunds_owner_and_forgets_subscription() -> None:
    acc, payouts, _ = mk()
    sub_id = funded_sub(acc, 250)
    assert acc.total_balance == 250
    assert acc.owner_cancel_subscription(sub_id) == 250
    assert payouts.sent == [(OWNER, 250)]
    assert acc.total_balance == 0
    assert acc.subscription_ids() == []
    with pytest.raises(InvalidSubscription):
        acc.get_subscription(sub_id)


def test_fund_rejects_non_positive_amounts() -> None:
    acc, _, _ = mk()
    sub_id = acc.create_subscription(OWNER)
    with pytest.raises(ValidationError):
        acc.fund_subscription(sub_id, 0)
    with pytest.raises(InvalidSubscription):
        acc.fund_subscription(sub_id + 1, 10)


# ---------- pools ----------


def _with_fees(acc: FeeAccountant) -> int:
    sub_id = funded_sub(acc, 1_000)
    acc.open_billing(1, acc.register_request(CONSUMER, 0, sub_id))
    acc.charge(1, units_used=100)
    acc.open_billing(2, acc.register_request(CONSUMER, 0, 0, 70))
    acc.charge(2, units_used=0)
    return sub_id


def test_pools_are_withdrawn_independently() -> None:
    acc, payouts, _ = mk()
    _with_fees(acc)
    assert acc.total_balance == 1_000
    assert acc.withdraw(POOL_SUBSCRIPTION, OTHER) == 100
    assert acc.pool_balance(POOL_SUBSCRIPTION) == 0
    assert acc.pool_balance(POOL_DIRECT) == 70
    assert acc.total_balance == 900
    assert acc.withdraw(POOL_DIRECT, OTHER, 20) == 20
    assert acc.pool_balance(POOL_DIRECT) == 50
    assert payouts.sent == [(OTHER, 100), (OTHER, 20)]


def test_withdraw_more_than_pool_is_refused() -> None:
    acc, _, _ = mk()
    _with_fees(acc)
    with pytest.raises(InsufficientPool):
        acc.withdraw(POOL_DIRECT, OTHER, 71)
    with pytest.raises(ValidationError):
        acc.withdraw("treasury", OTHER)


def test_reentrant_withdrawal_of_same_pool_is_refused() -> None:
    j = Journal()
    seen: List[int] = []

    def payout(to: str, amount: int) -> None:
        seen.append(amount)
        acc.withdraw(POOL_DIRECT, to)

    acc = FeeAccountant(j, payout, FLAT)
    _with_fees(acc)
    with pytest.raises(ReentrantWithdrawal):
        with j.atomic():
            acc.withdraw(POOL_DIRECT, OTHER)
    assert seen == [70]
    assert acc.pool_balance(POOL_DIRECT) == 70
    # the lock is released again afterwards
    seen.clear()
    acc._payout = lambda to, amount: seen.append(amount)
    assert acc.withdraw(POOL_DIRECT, OTHER) == 70


# ---------- pending-counter property ----------

ops = st.lists(
    st.one_of(
        st.tuples(st.just("request"), st.integers(min_value=0, max_value=2), st.integers(min_value=0, max_value=200)),
        st.tuples(st.just("charge"), st.integers(min_value=0, max_value=50), st.integers(min_value=0, max_value=300)),
    ),
    max_size=60,
)


@settings(max_examples=75, deadline=None)
@given(ops)
def test_pending_counters_track_uncharged_requests(steps) -> None:
    acc, _, j = mk()
    consumers = ["0x" + f"{0xc1 + i:040x}" for i in range(3)]
    sub_id = acc.create_subscription(OWNER)
    acc.fund_subscription(sub_id, 5_000)
    for c in consumers:
        acc.add_consumer(sub_id, c, OWNER)

    open_ids: List[int] = []
    owner_of = {}
    estimate_of = {}
    next_id = 1
    for kind, a, b in steps:
        if kind == "request":
            try:
                with j.atomic():
                    res = acc.register_request(consumers[a], b, sub_id)
                    acc.open_billing(next_id, res)
            except InsufficientBalance:
                pass
            else:
                open_ids.append(next_id)
                owner_of[next_id] = consumers[a]
                estimate_of[next_id] = res.estimate
                next_id += 1
        elif open_ids:
            rid = open_ids[a % len(open_ids)]
            # metered units never exceed what was estimated at admission
            acc.charge(rid, units_used=min(b, estimate_of[rid]))
            open_ids.remove(rid)

        for c in consumers:
            pending = acc.get_consumer(sub_id, c).pending
            assert pending >= 0
            assert pending == sum(1 for rid in open_ids if owner_of[rid] == c)
        assert acc.outstanding_requests(sub_id) == len(open_ids)
        sub = acc.get_subscription(sub_id)
        assert sub.reserved == sum(estimate_of[rid] for rid in open_ids)
        assert 0 <= sub.reserved <= sub.balance
        assert acc.get_subscription(sub_id).balance + acc.pool_balance(POOL_SUBSCRIPTION) == acc.total_balance
