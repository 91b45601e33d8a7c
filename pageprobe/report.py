"""
Report synthesis for a finished probe run.

Reduces the aggregator's final state into a ``Report``: a structured
document for ``summary.json`` and a human-readable text summary for the
console. Threshold verdicts are informational here; whether a breach
fails the process is the CLI's decision (``--fail-on-thresholds``).

Threshold rules:

- ``page_load_time``: p95 must be strictly below ``pageLoadTime95p``
- ``initial_render_time``: p95 must be strictly below ``initialRenderTime95p``
- ``test_errors``: count must be strictly below ``maxErrors``

A trend with no samples has no p95 and passes.
"""

from __future__ import annotations

import json
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pageprobe.config import ProbeConfig, Thresholds
from pageprobe.metrics import (
    INITIAL_RENDER_TIME,
    ITERATIONS,
    PAGE_LOAD_TIME,
    SCREENSHOTS_TAKEN,
    TEST_ERRORS,
    URLS_PROCESSED,
    MetricsAggregator,
)
from pageprobe.models import IterationResult

DEFAULT_SUMMARY_PATH = "summary.json"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ThresholdResult:
    """Verdict for one threshold."""

    metric: str
    statistic: str
    actual: float | None
    limit: float
    passed: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "statistic": self.statistic,
            "actual": self.actual,
            "limit": self.limit,
            "passed": self.passed,
        }


def evaluate_thresholds(
    aggregator: MetricsAggregator, thresholds: Thresholds
) -> tuple[ThresholdResult, ...]:
    """Compare the aggregated metrics against the configured limits."""
    page_load_p95 = aggregator.trend(PAGE_LOAD_TIME).percentile(95)
    render_p95 = aggregator.trend(INITIAL_RENDER_TIME).percentile(95)
    errors = aggregator.value(TEST_ERRORS)

    return (
        ThresholdResult(
            metric=PAGE_LOAD_TIME,
            statistic="p(95)",
            actual=page_load_p95,
            limit=thresholds.page_load_p95_ms,
            passed=page_load_p95 is None or page_load_p95 < thresholds.page_load_p95_ms,
        ),
        ThresholdResult(
            metric=INITIAL_RENDER_TIME,
            statistic="p(95)",
            actual=render_p95,
            limit=thresholds.render_p95_ms,
            passed=render_p95 is None or render_p95 < thresholds.render_p95_ms,
        ),
        ThresholdResult(
            metric=TEST_ERRORS,
            statistic="count",
            actual=errors,
            limit=thresholds.max_errors,
            passed=errors < thresholds.max_errors,
        ),
    )


@dataclass(frozen=True)
class Report:
    """
    Read-only snapshot of one run.

    Attributes:
        metrics: Aggregator snapshot (trends, counters, checks).
        config: Configuration the run used.
        duration_ms: Wall-clock run duration.
        workers: Number of workers started.
        thresholds: Threshold verdicts.
        results: Per-iteration records, ordered by worker and iteration.
        timestamp: ISO-8601 UTC time the report was synthesized.
    """

    metrics: dict[str, Any]
    config: ProbeConfig
    duration_ms: int
    workers: int
    thresholds: tuple[ThresholdResult, ...]
    results: tuple[IterationResult, ...] = field(default_factory=tuple)
    timestamp: str = ""

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.thresholds)

    @property
    def check_pass_rate(self) -> int | None:
        """``passes / (passes + fails) * 100`` rounded, or None without checks."""
        checks = self.metrics["checks"]
        total = checks["passes"] + checks["fails"]
        if total == 0:
            return None
        return round_half_up(checks["passes"] / total * 100)

    def trend(self, name: str) -> dict[str, Any]:
        return self.metrics["trends"][name]

    def counter(self, name: str) -> int:
        return self.metrics["counters"][name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "state": {"testRunDurationMs": self.duration_ms, "workers": self.workers},
            "metrics": self.metrics,
            "checkPassRate": self.check_pass_rate,
            "thresholds": [result.to_dict() for result in self.thresholds],
            "passed": self.passed,
            "targets": [target.to_dict() for target in self.config.targets],
            "config": self.config.to_dict(),
            "iterations": [result.to_dict() for result in self.results],
        }

    # -------------------------------------------------------------------------
    # Text Rendering
    # -------------------------------------------------------------------------

    def render_text(self, indent: str = " ", summary_path: str = DEFAULT_SUMMARY_PATH) -> str:
        """Render the multi-section console summary."""
        lines = ["", "=== Parallel URL Performance Test Summary ===", ""]

        lines.append("Test Configuration:")
        lines.append(f"   Total URLs tested: {len(self.config.targets)}")
        lines.append(f"   Virtual Users: {self.workers}")
        lines.append(f"   Total Iterations: {self.counter(ITERATIONS)}")
        lines.append(f"   Test Duration: {round_half_up(self.duration_ms / 1000)}s")
        lines.append("")

        lines.append("URLs Tested:")
        for position, target in enumerate(self.config.targets, start=1):
            lines.append(f"   {position}. {target.name}")
        lines.append("")

        lines.extend(self._trend_lines("Page Load Times:", PAGE_LOAD_TIME))
        lines.extend(self._trend_lines("Initial Render Times:", INITIAL_RENDER_TIME))

        pass_rate = self.check_pass_rate
        lines.append("Test Results:")
        lines.append(f"   URLs successfully processed: {self.counter(URLS_PROCESSED)}")
        lines.append(f"   Screenshots taken: {self.counter(SCREENSHOTS_TAKEN)}")
        lines.append(f"   Errors encountered: {self.counter(TEST_ERRORS)}")
        lines.append(
            f"   Overall check pass rate: {'N/A' if pass_rate is None else f'{pass_rate}%'}"
        )
        lines.append("")

        lines.extend(self._threshold_lines())
        lines.append("")

        lines.append("Test completed!")
        lines.append(f"Screenshots saved in: {self.config.settings.screenshot_dir}/")
        lines.append(f"Detailed results saved in: {summary_path}")
        lines.append("")

        return "\n".join(f"{indent}{line}" if line else line for line in lines) + "\n"

    def _trend_lines(self, heading: str, name: str) -> list[str]:
        stats = self.trend(name)
        if not stats["count"]:
            return []
        return [
            heading,
            f"   Average: {round_half_up(stats['avg'])}ms",
            f"   Median: {round_half_up(stats['med'])}ms",
            f"   95th percentile: {round_half_up(stats['p(95)'])}ms",
            f"   Min: {round_half_up(stats['min'])}ms",
            f"   Max: {round_half_up(stats['max'])}ms",
            "",
        ]

    def _threshold_lines(self) -> list[str]:
        lines = [
            "Thresholds:",
            "-" * 66,
            f"{'Metric':<28}{'Actual':>12}{'Limit':>14}{'Status':>12}",
            "-" * 66,
        ]
        for result in self.thresholds:
            label = f"{result.metric} {result.statistic}"
            actual = "N/A" if result.actual is None else f"{result.actual:.2f}"
            status = "PASS" if result.passed else "FAIL"
            lines.append(f"{label:<28}{actual:>12}{result.limit:>14.2f}{status:>12}")
        lines.append("-" * 66)
        lines.append(f"Overall: {'PASS' if self.passed else 'FAIL'}")
        return lines


def synthesize(
    aggregator: MetricsAggregator,
    config: ProbeConfig,
    duration_ms: int,
    workers: int | None = None,
    results: Sequence[IterationResult] = (),
    now: datetime | None = None,
) -> Report:
    """
    Build the run report from the aggregator's final state.

    Args:
        aggregator: Metrics after every worker has finished.
        config: Configuration the run used.
        duration_ms: Wall-clock run duration.
        workers: Workers started; defaults to the configured count.
        results: Per-iteration records to include in the document.
        now: Report time; defaults to the current UTC time.
    """
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    return Report(
        metrics=aggregator.snapshot(),
        config=config,
        duration_ms=duration_ms,
        workers=config.settings.parallel_workers if workers is None else workers,
        thresholds=evaluate_thresholds(aggregator, config.thresholds),
        results=tuple(results),
        timestamp=timestamp,
    )


def write_summary(report: Report, path: str | Path = DEFAULT_SUMMARY_PATH) -> Path:
    """Write the structured report as indented JSON and return its path."""
    summary_path = Path(path)
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    with summary_path.open("w", encoding="utf-8") as handle:
        json.dump(report.to_dict(), handle, indent=2)
        handle.write("\n")
    return summary_path
