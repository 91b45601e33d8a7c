"""
Per-iteration test routine.

One iteration probes one target on behalf of one worker. The steps run
in a fixed order:

1. navigate and wait for DOM content loaded (page load time)
2. wait for the ``load`` event (initial render time)
3. initial screenshot
4. fixed delay, then a second screenshot
5. in-page navigation/paint timings, logged for diagnosis only
6. quality checks
7. count the target as processed

Only the navigation and load-state steps can fail the iteration. Every
other step degrades in place: screenshots, timing collection and quality
checks log their failure and the routine moves on. A failed iteration
counts one test error, attempts one ``ERROR`` screenshot and returns
normally, so sibling workers are never affected.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from pageprobe.browser import ProbePage
from pageprobe.config import ProbeConfig
from pageprobe.metrics import (
    INITIAL_RENDER_TIME,
    ITERATIONS,
    PAGE_LOAD_TIME,
    TEST_ERRORS,
    URLS_PROCESSED,
    MetricsAggregator,
)
from pageprobe.models import (
    ErrorKind,
    IterationResult,
    Outcome,
    QualityVerdict,
    Result,
    TargetSpec,
)
from pageprobe.naming import PHASE_DELAYED, PHASE_ERROR, PHASE_INITIAL, screenshot_path
from pageprobe.quality import assess
from pageprobe.screenshots import capture

logger = logging.getLogger(__name__)

CHECK_LOADED = "page loaded successfully"
CHECK_LOAD_TIME = "page load time acceptable"
CHECK_RESPONSE = "response not null"
CHECK_TITLE = "page has title"
CHECK_CONTENT = "page has content"
CHECK_NO_ERRORS = "no critical errors detected"

# Navigation Timing Level 2 entries measure from the navigation start,
# so ``startTime`` (always 0) is the baseline.
PERFORMANCE_TIMING_SCRIPT = """
() => {
  const navigation = performance.getEntriesByType("navigation")[0];
  if (!navigation) {
    return null;
  }
  let firstPaint = 0;
  let firstContentfulPaint = 0;
  for (const entry of performance.getEntriesByType("paint")) {
    if (entry.name === "first-paint") firstPaint = entry.startTime;
    if (entry.name === "first-contentful-paint") firstContentfulPaint = entry.startTime;
  }
  return {
    domContentLoaded: navigation.domContentLoadedEventEnd - navigation.startTime,
    loadComplete: navigation.loadEventEnd - navigation.startTime,
    firstPaint: firstPaint,
    firstContentfulPaint: firstContentfulPaint,
    domInteractive: navigation.domInteractive - navigation.startTime,
    redirectTime: navigation.redirectEnd - navigation.redirectStart,
    dnsTime: navigation.domainLookupEnd - navigation.domainLookupStart,
    connectTime: navigation.connectEnd - navigation.connectStart,
  };
}
"""


@dataclass
class _Progress:
    """Measurements gathered so far; kept for the error path."""

    start_ms: int
    dom_content_loaded_ms: int | None = None
    render_ms: int | None = None
    screenshots_taken: int = 0
    verdict: QualityVerdict | None = None


def collect_performance_timing(
    page: ProbePage, target_name: str, worker_id: int
) -> dict[str, Any] | None:
    """
    Read navigation and paint timings from the page.

    Returns:
        The timing dict, or ``None`` when the browser exposes no
        navigation entry or the evaluation failed.
    """
    result = page.evaluate(PERFORMANCE_TIMING_SCRIPT)
    if not result.ok:
        logger.warning(
            f"VU {worker_id}: Error collecting performance metrics for {target_name}: "
            f"{result.message}"
        )
        return None

    if result.value:
        logger.info(
            f"VU {worker_id}: Performance metrics for {target_name}: "
            f"{json.dumps(result.value, indent=2)}"
        )
    return result.value


def run_iteration(
    page: ProbePage,
    target: TargetSpec,
    worker_id: int,
    iteration: int,
    config: ProbeConfig,
    aggregator: MetricsAggregator,
) -> IterationResult:
    """
    Execute one iteration against *target*.

    Args:
        page: Fresh page owned by this iteration.
        target: Target assigned to the worker.
        worker_id: 1-based worker identifier.
        iteration: 0-based iteration index within the worker.
        config: Resolved run configuration.
        aggregator: Shared metrics sink.

    Returns:
        The iteration record. This function does not raise for page or
        browser failures; they are folded into an ``error`` outcome.
    """
    logger.info(f"VU {worker_id}: Starting test for {target.name} ({target.url})")
    progress = _Progress(start_ms=page.now_ms())

    try:
        failure = _execute_steps(page, target, worker_id, config, aggregator, progress)
    except Exception as exc:
        failure = Result.failure(ErrorKind.UNEXPECTED, f"{type(exc).__name__}: {exc}")
    finally:
        aggregator.increment(ITERATIONS)

    if failure is not None:
        return _handle_failure(page, target, worker_id, iteration, config, aggregator, progress, failure)

    aggregator.increment(URLS_PROCESSED)
    logger.info(f"VU {worker_id}: Test completed successfully for {target.name}")
    return _build_result(target, worker_id, iteration, progress, Outcome.SUCCESS)


def _execute_steps(
    page: ProbePage,
    target: TargetSpec,
    worker_id: int,
    config: ProbeConfig,
    aggregator: MetricsAggregator,
    progress: _Progress,
) -> Result[Any] | None:
    """Run the happy path; return the failing result if a core step fails."""
    settings = config.settings

    navigation = page.navigate(target.url, "domcontentloaded", target.timeout_ms)
    if not navigation.ok:
        return navigation

    dom_loaded_at = page.now_ms()
    load_time = dom_loaded_at - progress.start_ms
    progress.dom_content_loaded_ms = load_time
    aggregator.add_sample(PAGE_LOAD_TIME, load_time)

    response = navigation.value
    aggregator.record_checks({
        CHECK_LOADED: response is not None and response.status == 200,
        CHECK_LOAD_TIME: load_time < target.timeout_ms,
        CHECK_RESPONSE: response is not None,
    })
    logger.info(f"VU {worker_id}: {target.name} loaded in {load_time}ms")

    load_state = page.wait_for_load_state("load", target.timeout_ms)
    if not load_state.ok:
        return load_state

    render_time = page.now_ms() - dom_loaded_at
    progress.render_ms = render_time
    aggregator.add_sample(INITIAL_RENDER_TIME, render_time)
    logger.info(f"VU {worker_id}: {target.name} initial render completed in {render_time}ms")

    directory = settings.screenshot_dir
    image_format = settings.screenshot_format
    initial = capture(
        page,
        screenshot_path(
            directory, target.name, PHASE_INITIAL, worker_id, progress.start_ms, image_format
        ),
        f"{target.name} - Initial render",
        settings,
        aggregator,
    )
    progress.screenshots_taken += int(initial.ok)

    delay = settings.screenshot_delay_ms
    logger.info(f"VU {worker_id}: Waiting {delay}ms before second screenshot...")
    paused = page.pause(delay)
    if not paused.ok:
        logger.warning(f"VU {worker_id}: Delay interrupted for {target.name}: {paused.message}")

    delayed = capture(
        page,
        screenshot_path(
            directory, target.name, PHASE_DELAYED, worker_id, progress.start_ms + delay, image_format
        ),
        f"{target.name} - After {delay}ms",
        settings,
        aggregator,
    )
    progress.screenshots_taken += int(delayed.ok)

    collect_performance_timing(page, target.name, worker_id)

    verdict = assess(page, target.name, config.quality)
    progress.verdict = verdict
    aggregator.record_checks({
        CHECK_TITLE: verdict.has_title,
        CHECK_CONTENT: verdict.has_content,
        CHECK_NO_ERRORS: verdict.no_critical_errors,
    })
    return None


def _handle_failure(
    page: ProbePage,
    target: TargetSpec,
    worker_id: int,
    iteration: int,
    config: ProbeConfig,
    aggregator: MetricsAggregator,
    progress: _Progress,
    failure: Result[Any],
) -> IterationResult:
    """Count the error, take a best-effort error screenshot, and record it."""
    aggregator.increment(TEST_ERRORS)
    kind = failure.error_kind.value if failure.error_kind else ErrorKind.UNEXPECTED.value
    reason = f"{kind}: {failure.message}"
    logger.error(f"VU {worker_id}: Error testing {target.name}: {reason}")

    try:
        error_shot = capture(
            page,
            screenshot_path(
                config.settings.screenshot_dir,
                target.name,
                PHASE_ERROR,
                worker_id,
                page.now_ms(),
                config.settings.screenshot_format,
            ),
            f"{target.name} - ERROR STATE",
            config.settings,
            aggregator,
        )
        progress.screenshots_taken += int(error_shot.ok)
    except Exception as exc:
        logger.error(f"VU {worker_id}: Could not take error screenshot: {exc}")

    return _build_result(target, worker_id, iteration, progress, Outcome.ERROR, reason)


def _build_result(
    target: TargetSpec,
    worker_id: int,
    iteration: int,
    progress: _Progress,
    outcome: Outcome,
    reason: str | None = None,
) -> IterationResult:
    return IterationResult(
        target_name=target.name,
        worker_id=worker_id,
        iteration=iteration,
        start_time_ms=progress.start_ms,
        dom_content_loaded_ms=progress.dom_content_loaded_ms,
        render_ms=progress.render_ms,
        screenshots_taken=progress.screenshots_taken,
        quality_verdict=progress.verdict,
        outcome=outcome,
        reason=reason,
    )
