"""
Pricing: convert compute units into an integer amount.

Pure and side-effect free; all amounts are integers in the smallest unit.

Estimate (at request time, from the requested callback budget):

    base  = unit_price × (fixed_overhead + budget + pairing_check_overhead
                          + dispatch_reserve(budget, cfg))
    total = base × (100 + premium_percentage) // 100 + flat_fee

Actual payment (at fulfillment time, from units metered while fulfilling):

    unit_price × (fixed_overhead + units_used) × (100 + premium_percentage) // 100 + flat_fee

``dispatch_reserve`` is the cost of a bounded sub-call: the larger of the
configured ``dispatch_overhead`` and budget // 63 + 1. Fulfillment charges the
same reserve, so an unchanged configuration never charges more than the
estimate.
All formulas are monotonically non-decreasing in their unit inputs.

Example
-------
>>> cfg = PricingConfig(fixed_overhead=0, pairing_check_overhead=0, dispatch_overhead=0, premium_percentage=0)
>>> estimate_price(630, 1, cfg)
641
"""

from __future__ import annotations

from ..config import PricingConfig
from ..constants import DISPATCH_RESERVE_DIVISOR
from ..errors import ValidationError

Amount = int


def _nonneg(name: str, v: int) -> None:
    if not isinstance(v, int) or v < 0:
        raise ValidationError(f"{name} must be a non-negative int", details={name: v})


def dispatch_reserve(budget: int, cfg: PricingConfig) -> int:
    _nonneg("budget", budget)
    return max(cfg.dispatch_overhead, budget // DISPATCH_RESERVE_DIVISOR + 1)


def _with_premium(base: int, cfg: PricingConfig) -> Amount:
    return base * (100 + cfg.premium_percentage) // 100 + cfg.flat_fee


def estimate_price(budget: int, unit_price: int, cfg: PricingConfig) -> Amount:
    _nonneg("budget", budget)
    _nonneg("unit_price", unit_price)
    units = cfg.fixed_overhead + budget + cfg.pairing_check_overhead + dispatch_reserve(budget, cfg)
    return _with_premium(unit_price * units, cfg)


def actual_payment(units_used: int, unit_price: int, cfg: PricingConfig) -> Amount:
    _nonneg("units_used", units_used)
    _nonneg("unit_price", unit_price)
    return _with_premium(unit_price * (cfg.fixed_overhead + units_used), cfg)


__all__ = ["Amount", "dispatch_reserve", "estimate_price", "actual_payment"]
