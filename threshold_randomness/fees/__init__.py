"""
Fee metering for randomness requests.

- pricing    : pure integer price formulas
- accountant : subscriptions, reservations, exactly-once charging, pools
"""

from .accountant import FeeAccountant, Reservation
from .pricing import actual_payment, dispatch_reserve, estimate_price

__all__ = ["FeeAccountant", "Reservation", "actual_payment", "dispatch_reserve", "estimate_price"]
