"""
Process-local metrics.

Counters count engine events such as ``leases.created`` or
``ledger.outcome.Indeterminate``. Gauges hold the latest reading of a
size, e.g. ``health.supervised``. Histograms summarize durations in
seconds, e.g. ``health.sweep_seconds``. Nothing is exported; the
registry is read through ``GET /v1/metrics``.
"""

from collections import defaultdict
from contextlib import contextmanager
from threading import Lock
from time import perf_counter
from typing import Any, Iterator, Optional


class Summary:
    """Running count, sum and bounds of observed values."""

    __slots__ = ("count", "total", "low", "high")

    def __init__(self) -> None:
        self.count = 0
        self.total = 0.0
        self.low: Optional[float] = None
        self.high: Optional[float] = None

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.low = value if self.low is None else min(self.low, value)
        self.high = value if self.high is None else max(self.high, value)

    def as_dict(self) -> dict[str, Any]:
        mean = self.total / self.count if self.count else 0.0
        return {
            "count": self.count,
            "total": self.total,
            "min": self.low,
            "max": self.high,
            "avg": mean,
        }


class MetricsRegistry:
    """Metrics shared by the engine, the health monitor and the API.

    Calls may come from worker threads (the Docker runtime runs there), so
    every read and write holds one lock.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: defaultdict[str, float] = defaultdict(float)
        self._gauges: dict[str, float] = {}
        self._summaries: defaultdict[str, Summary] = defaultdict(Summary)

    def inc_counter(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] += amount

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = value

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self._summaries[name].add(value)

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        """Record how long the block took, in seconds, even if it raises."""
        started = perf_counter()
        try:
            yield
        finally:
            self.observe(name, perf_counter() - started)

    def counter_value(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._summaries.clear()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "histograms": {name: s.as_dict() for name, s in self._summaries.items()},
            }


metrics = MetricsRegistry()
