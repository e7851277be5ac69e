"""
Prometheus metrics for the randomness engine.

Instruments:
  • requests_total      : requests accepted, by funding kind
  • fulfillments_total  : fulfill attempts, by outcome
  • callbacks_total     : consumer callback deliveries, by outcome
  • charges_total       : requests charged, by funding kind
  • retries_total       : retry attempts, by outcome
  • verify_seconds      : time spent in the pairing check

Labels use small fixed vocabularies; anything outside them is folded into
a catch-all value so storage stays bounded.

Usage
-----
    from threshold_randomness.metrics import METRICS

    METRICS.record_request("subscription")
    with METRICS.verify_timer():
        scheme.verify(point, sig)

Tests construct their own ``Metrics(registry=CollectorRegistry())``.
"""

from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter
from typing import Iterable

from prometheus_client import REGISTRY, Counter, Histogram

_FUNDING = ("subscription", "direct")

_FULFILL_OUTCOMES = (
    "delivered",      # verified and consumer callback succeeded
    "errored",        # verified, callback failed; id moved to errored
    "bad_signature",  # pairing check false or not computable
    "invalid",        # unknown id, already fulfilled, bad caller
)

_CALLBACK_OUTCOMES = ("ok", "reverted", "out_of_budget", "no_code")

_RETRY_OUTCOMES = ("delivered", "errored")

# Pairing checks in pure Python take on the order of seconds
_VERIFY_BUCKETS = (
    0.05, 0.1, 0.25, 0.5,
    1.0, 2.0, 4.0, 8.0,
    16.0, 32.0,
)


class Metrics:
    """
    Container for the engine's Prometheus instruments.

    Args:
        namespace: metric namespace (prefix).
        subsystem: inserted between namespace and name.
        registry:  registry to register the metrics with.
    """

    def __init__(
        self,
        *,
        namespace: str = "trand",
        subsystem: str = "engine",
        registry=REGISTRY,
        verify_buckets: Iterable[float] = _VERIFY_BUCKETS,
    ) -> None:
        self.requests_total = Counter(
            "requests_total",
            "Randomness requests accepted, labeled by funding kind.",
            labelnames=("funding",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.fulfillments_total = Counter(
            "fulfillments_total",
            "Fulfillment attempts, labeled by outcome.",
            labelnames=("outcome",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.callbacks_total = Counter(
            "callbacks_total",
            "Consumer callback deliveries, labeled by outcome.",
            labelnames=("outcome",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.charges_total = Counter(
            "charges_total",
            "Requests charged, labeled by funding kind.",
            labelnames=("funding",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.retries_total = Counter(
            "retries_total",
            "Callback retries, labeled by outcome.",
            labelnames=("outcome",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.verify_seconds = Histogram(
            "verify_seconds",
            "Time spent verifying threshold signatures (seconds).",
            buckets=tuple(verify_buckets),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )

    # ----- Recording helpers -------------------------------------------------

    def record_request(self, funding: str) -> None:
        if funding not in _FUNDING:
            funding = "direct"
        self.requests_total.labels(funding=funding).inc()

    def record_fulfillment(self, outcome: str) -> None:
        if outcome not in _FULFILL_OUTCOMES:
            outcome = "invalid"
        self.fulfillments_total.labels(outcome=outcome).inc()

    def record_callback(self, outcome: str) -> None:
        if outcome not in _CALLBACK_OUTCOMES:
            outcome = "reverted"
        self.callbacks_total.labels(outcome=outcome).inc()

    def record_charge(self, funding: str) -> None:
        if funding not in _FUNDING:
            funding = "direct"
        self.charges_total.labels(funding=funding).inc()

    def record_retry(self, outcome: str) -> None:
        if outcome not in _RETRY_OUTCOMES:
            outcome = "errored"
        self.retries_total.labels(outcome=outcome).inc()

    def observe_verify(self, seconds: float) -> None:
        self.verify_seconds.observe(float(seconds))

    @contextmanager
    def verify_timer(self):
        """
        Time a verification block.

            with METRICS.verify_timer():
                scheme.verify(...)
        """
        start = perf_counter()
        try:
            yield
        finally:
            self.observe_verify(perf_counter() - start)


# Singleton used by default engines
METRICS = Metrics()

__all__ = [
    "Metrics",
    "METRICS",
    "_FULFILL_OUTCOMES",
    "_CALLBACK_OUTCOMES",
]
