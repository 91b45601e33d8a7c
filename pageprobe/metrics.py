"""
Run-wide metrics aggregation.

Every worker feeds the same ``MetricsAggregator``. It owns two trends
(distributions of millisecond samples), a handful of counters and the
named check tallies. All mutations happen under one lock, so each
``add_sample``/``increment``/``record_check`` is indivisible and a run
interrupted between iterations never leaves partial state behind.

Percentiles use linear interpolation between closest ranks: for ``n``
sorted samples the p-th percentile sits at rank ``(n - 1) * p / 100``.
For ``[100, 200, 300, 400, 500]`` that gives a median of 300 and a
95th percentile of 480.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

PAGE_LOAD_TIME = "page_load_time"
INITIAL_RENDER_TIME = "initial_render_time"

SCREENSHOTS_TAKEN = "screenshots_taken"
TEST_ERRORS = "test_errors"
URLS_PROCESSED = "urls_processed"
ITERATIONS = "iterations"

TREND_NAMES = (PAGE_LOAD_TIME, INITIAL_RENDER_TIME)
COUNTER_NAMES = (SCREENSHOTS_TAKEN, TEST_ERRORS, URLS_PROCESSED, ITERATIONS)


def percentile(values: Sequence[float], pct: float) -> float | None:
    """
    Return the *pct*-th percentile of *values* by linear interpolation.

    Returns:
        The interpolated value, or ``None`` for an empty sequence.
    """
    if not values:
        return None
    if not 0 <= pct <= 100:
        raise ValueError(f"Percentile must be within 0..100, got {pct}")

    ordered = sorted(values)
    rank = (len(ordered) - 1) * (pct / 100)
    lower, upper = math.floor(rank), math.ceil(rank)
    if lower == upper:
        return float(ordered[lower])
    return ordered[lower] + (ordered[upper] - ordered[lower]) * (rank - lower)


class Trend:
    """A distribution of numeric samples."""

    def __init__(self, name: str, samples: Iterable[float] = ()):
        self.name = name
        self._samples: list[float] = list(samples)

    def add(self, value: float) -> None:
        self._samples.append(value)

    @property
    def samples(self) -> list[float]:
        return list(self._samples)

    def count(self) -> int:
        return len(self._samples)

    def mean(self) -> float | None:
        if not self._samples:
            return None
        return sum(self._samples) / len(self._samples)

    def median(self) -> float | None:
        return percentile(self._samples, 50)

    def percentile(self, pct: float) -> float | None:
        return percentile(self._samples, pct)

    def min(self) -> float | None:
        return min(self._samples) if self._samples else None

    def max(self) -> float | None:
        return max(self._samples) if self._samples else None

    def summary(self) -> dict[str, Any]:
        """Summary values keyed the way load-testing reports label them."""
        return {
            "count": self.count(),
            "avg": self.mean(),
            "med": self.median(),
            "p(90)": self.percentile(90),
            "p(95)": self.percentile(95),
            "min": self.min(),
            "max": self.max(),
        }


class Counter:
    """A monotonically increasing count."""

    def __init__(self, name: str, value: int = 0):
        self.name = name
        self._value = value

    def add(self, amount: int = 1) -> None:
        if amount < 0:
            raise ValueError(f"Counter {self.name} cannot decrease")
        self._value += amount

    def value(self) -> int:
        return self._value


class MetricsAggregator:
    """
    Thread-safe collector shared by all workers.

    Reads return copies taken under the lock, so a report computed while
    stragglers are still finishing sees a consistent snapshot.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._trends = {name: Trend(name) for name in TREND_NAMES}
        self._counters = {name: Counter(name) for name in COUNTER_NAMES}
        self._checks: dict[str, dict[str, int]] = {}

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_sample(self, name: str, value: float) -> None:
        """Add one sample to the named trend."""
        with self._lock:
            self._lookup(self._trends, name).add(value)

    def increment(self, name: str, amount: int = 1) -> None:
        """Increase the named counter."""
        with self._lock:
            self._lookup(self._counters, name).add(amount)

    def record_check(self, name: str, passed: bool) -> None:
        """Tally one pass or fail for the named check."""
        with self._lock:
            tally = self._checks.setdefault(name, {"passes": 0, "fails": 0})
            tally["passes" if passed else "fails"] += 1

    def record_checks(self, results: Mapping[str, bool]) -> None:
        """Tally several checks as one indivisible update."""
        with self._lock:
            for name, passed in results.items():
                tally = self._checks.setdefault(name, {"passes": 0, "fails": 0})
                tally["passes" if passed else "fails"] += 1

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def trend(self, name: str) -> Trend:
        """Return a copy of the named trend."""
        with self._lock:
            return Trend(name, self._lookup(self._trends, name).samples)

    def value(self, name: str) -> int:
        """Return the current value of the named counter."""
        with self._lock:
            return self._lookup(self._counters, name).value()

    def checks(self) -> dict[str, dict[str, int]]:
        """Return per-check ``{"passes": n, "fails": m}`` tallies."""
        with self._lock:
            return {name: dict(tally) for name, tally in self._checks.items()}

    def check_totals(self) -> tuple[int, int]:
        """Return ``(passes, fails)`` summed over every check."""
        checks = self.checks()
        passes = sum(tally["passes"] for tally in checks.values())
        fails = sum(tally["fails"] for tally in checks.values())
        return passes, fails

    def snapshot(self) -> dict[str, Any]:
        """Return every metric as plain data."""
        with self._lock:
            trends = {name: trend.summary() for name, trend in self._trends.items()}
            counters = {name: counter.value() for name, counter in self._counters.items()}
            checks = {name: dict(tally) for name, tally in self._checks.items()}

        passes = sum(tally["passes"] for tally in checks.values())
        fails = sum(tally["fails"] for tally in checks.values())
        return {
            "trends": trends,
            "counters": counters,
            "checks": {"passes": passes, "fails": fails, "by_name": checks},
        }

    @staticmethod
    def _lookup(metrics: Mapping[str, Any], name: str) -> Any:
        try:
            return metrics[name]
        except KeyError:
            raise KeyError(f"Unknown metric: {name}") from None
