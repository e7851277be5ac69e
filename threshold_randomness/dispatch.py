"""
Callback dispatch under a compute budget.

Requesters are reached through a :class:`HandlerDirectory` that maps an
address to a Python object ("code at an address"). Delivering a callback
means calling ``getattr(handler, method)(*args)`` while a
:class:`ComputeMeter` is installed in a context variable; handler code
reports its work with :func:`consume`.

The dispatcher never raises on behalf of the callee. Every outcome is turned
into a :class:`DeliveryResult`:

    ok             the call returned and stayed within budget
    reverted       the call raised
    out_of_budget  the meter was exhausted (even if the callee swallowed it)
    no_code        nothing registered at the address, or no such method

Engine state the callee changed (for instance by re-entering the engine) is
rolled back for every outcome other than ``ok``.
"""

from __future__ import annotations

import contextvars
import logging
from typing import Any, Dict, Iterator, Optional

from .journal import Journal
from .metrics import METRICS, Metrics
from .types.core import Address, DeliveryResult, normalize_address

logger = logging.getLogger(__name__)


class OutOfBudget(Exception):
    """Raised inside a callback when it consumes more units than it was given."""

    def __init__(self, used: int, limit: int) -> None:
        super().__init__(f"compute budget exhausted: used {used} of {limit}")
        self.used = used
        self.limit = limit


class ComputeMeter:
    """Counts compute units; ``limit=None`` means unmetered."""

    def __init__(self, limit: Optional[int]) -> None:
        if limit is not None and limit < 0:
            raise ValueError("limit must be >= 0")
        self.limit = limit
        self.used = 0
        self.exhausted = False

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(self.limit - self.used, 0)

    def consume(self, units: int) -> None:
        if units < 0:
            raise ValueError("units must be >= 0")
        self.used += units
        if self.limit is not None and self.used > self.limit:
            self.exhausted = True
            raise OutOfBudget(self.used, self.limit)


_METER: contextvars.ContextVar[Optional[ComputeMeter]] = contextvars.ContextVar("trand_meter", default=None)


def current_meter() -> Optional[ComputeMeter]:
    return _METER.get()


def consume(units: int) -> None:
    """Charge ``units`` against the running callback's budget (no-op outside a callback)."""
    meter = _METER.get()
    if meter is not None:
        meter.consume(units)


class HandlerDirectory:
    def __init__(self) -> None:
        self._handlers: Dict[Address, Any] = {}

    def register(self, address: Address, handler: Any) -> Address:
        addr = normalize_address(address)
        self._handlers[addr] = handler
        return addr

    def unregister(self, address: Address) -> None:
        self._handlers.pop(normalize_address(address), None)

    def get(self, address: Address) -> Optional[Any]:
        return self._handlers.get(normalize_address(address))

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and self.get(address) is not None

    def __iter__(self) -> Iterator[Address]:
        return iter(sorted(self._handlers))


class CallbackDispatcher:
    def __init__(self, directory: HandlerDirectory, journal: Journal, *, metrics: Metrics = METRICS) -> None:
        self._directory = directory
        self._journal = journal
        self._metrics = metrics

    def deliver(self, target: Address, method: str, budget: Optional[int], *args: Any) -> DeliveryResult:
        handler = self._directory.get(target)
        fn = getattr(handler, method, None) if handler is not None else None
        if not callable(fn):
            logger.warning("dispatch: no %s() at %s", method, target)
            return self._done(DeliveryResult(success=False, reason="no_code", error=f"no {method} at {target}"))

        meter = ComputeMeter(budget)
        token = _METER.set(meter)
        try:
            with self._journal.atomic():
                fn(*args)
                if meter.exhausted:
                    raise OutOfBudget(meter.used, meter.limit or 0)
            result = DeliveryResult(success=True, reason="ok", units_used=meter.used)
        except Exception as e:
            if meter.exhausted:
                logger.warning("dispatch: %s.%s ran out of budget (%s)", target, method, e)
                result = DeliveryResult(
                    success=False, reason="out_of_budget", units_used=meter.limit or 0, error=str(e)
                )
            else:
                logger.warning("dispatch: %s.%s reverted: %r", target, method, e)
                result = DeliveryResult(success=False, reason="reverted", units_used=meter.used, error=repr(e))
        finally:
            _METER.reset(token)
        return self._done(result)

    def _done(self, result: DeliveryResult) -> DeliveryResult:
        self._metrics.record_callback(result.reason)
        return result


__all__ = [
    "OutOfBudget",
    "ComputeMeter",
    "current_meter",
    "consume",
    "HandlerDirectory",
    "CallbackDispatcher",
]
