"""
Worker pool and work distribution.

Each worker is a thread with its own browser. Workers are assigned a
target by static round-robin, ``(worker_id - 1) mod len(targets)``, and
run their iterations sequentially, opening a fresh browser context for
every iteration. The only state shared between workers is the
``MetricsAggregator``.

The run deadline (``max_duration_s``) is checked between iterations:
once it passes, workers finish the iteration in flight and stop.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from pageprobe.browser import BrowserSessions
from pageprobe.config import ProbeConfig
from pageprobe.iteration import run_iteration
from pageprobe.metrics import ITERATIONS, TEST_ERRORS, MetricsAggregator
from pageprobe.models import IterationResult, TargetSpec
from pageprobe.report import Report, synthesize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunOutcome:
    """What a finished run hands to the report synthesizer."""

    results: tuple[IterationResult, ...]
    duration_ms: int
    workers: int
    deadline_reached: bool = False


def assign_target(worker_id: int, targets: Sequence[TargetSpec]) -> tuple[int, TargetSpec]:
    """
    Map a 1-based worker id to its target.

    Returns:
        ``(index, target)`` where ``index == (worker_id - 1) % len(targets)``.

    Raises:
        ValueError: If ``worker_id`` is below 1 or there are no targets.
    """
    if worker_id < 1:
        raise ValueError(f"worker_id must be >= 1, got {worker_id}")
    if not targets:
        raise ValueError("No targets to assign")

    index = (worker_id - 1) % len(targets)
    return index, targets[index]


def run_worker(
    worker_id: int,
    config: ProbeConfig,
    sessions: Any,
    aggregator: MetricsAggregator,
    deadline: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> tuple[list[IterationResult], bool]:
    """
    Run every iteration assigned to one worker.

    Args:
        worker_id: 1-based worker identifier.
        config: Resolved run configuration.
        sessions: Object whose ``worker(worker_id)`` context manager
            yields a browser with a ``page()`` context manager (see
            ``BrowserSessions``).
        aggregator: Shared metrics sink.
        deadline: ``clock()`` value after which no new iteration starts.
        clock: Monotonic clock in seconds.

    Returns:
        ``(results, deadline_reached)``. A browser start-up failure is
        logged and counted as one test error and ends this worker only. A
        context or page failure is counted the same way but cancels only
        the iteration it happened in.
    """
    _, target = assign_target(worker_id, config.targets)
    results: list[IterationResult] = []
    deadline_reached = False

    try:
        with sessions.worker(worker_id) as browser:
            for iteration in range(config.settings.iterations_per_worker):
                if deadline is not None and clock() >= deadline:
                    deadline_reached = True
                    logger.warning(
                        f"VU {worker_id}: Max duration reached; stopping after "
                        f"{iteration} iteration(s) of {target.name}"
                    )
                    break

                _run_isolated(browser, target, worker_id, iteration, config, aggregator, results)
    except Exception as exc:
        aggregator.increment(TEST_ERRORS)
        logger.error(f"VU {worker_id}: Browser session failed while testing {target.name}: {exc}")

    return results, deadline_reached


def _run_isolated(
    browser: Any,
    target: TargetSpec,
    worker_id: int,
    iteration: int,
    config: ProbeConfig,
    aggregator: MetricsAggregator,
    results: list[IterationResult],
) -> None:
    """Run one iteration in its own page; page setup or teardown failures end only it."""
    started = False
    try:
        with browser.page() as page:
            started = True
            results.append(run_iteration(page, target, worker_id, iteration, config, aggregator))
    except Exception as exc:
        aggregator.increment(TEST_ERRORS)
        if not started:
            aggregator.increment(ITERATIONS)
        logger.error(
            f"VU {worker_id}: Browser page failed during iteration {iteration} "
            f"of {target.name}: {exc}"
        )


def run_probe(
    config: ProbeConfig,
    sessions: Any,
    aggregator: MetricsAggregator,
    clock: Callable[[], float] = time.monotonic,
) -> RunOutcome:
    """
    Run all workers to completion on a thread pool.

    Returns:
        A ``RunOutcome`` with results ordered by worker and iteration.
    """
    settings = config.settings
    workers = settings.parallel_workers
    started = clock()
    deadline = started + settings.max_duration_s

    logger.info(
        f"Starting {workers} worker(s), {settings.iterations_per_worker} iteration(s) each, "
        f"across {len(config.targets)} target(s)"
    )

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pageprobe-vu") as executor:
        futures = [
            executor.submit(run_worker, worker_id, config, sessions, aggregator, deadline, clock)
            for worker_id in range(1, workers + 1)
        ]
        worker_outputs = [future.result() for future in futures]

    results = sorted(
        (result for worker_results, _ in worker_outputs for result in worker_results),
        key=lambda result: (result.worker_id, result.iteration),
    )
    duration_ms = int((clock() - started) * 1000)
    logger.info(f"Run finished in {duration_ms}ms with {len(results)} iteration(s)")

    return RunOutcome(
        results=tuple(results),
        duration_ms=duration_ms,
        workers=workers,
        deadline_reached=any(reached for _, reached in worker_outputs),
    )


class Probe:
    """
    One configured run: configuration plus its metrics aggregator.

    Attributes:
        config: Resolved configuration.
        aggregator: Metrics collected by this probe's run.
    """

    def __init__(self, config: ProbeConfig, aggregator: MetricsAggregator | None = None):
        self.config = config
        self.aggregator = aggregator or MetricsAggregator()

    def run(
        self,
        sessions: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> Report:
        """
        Execute the run and synthesize its report.

        Args:
            sessions: Browser session factory; real Chromium sessions are
                used when omitted.
            clock: Monotonic clock in seconds for the run deadline.
        """
        if sessions is None:
            sessions = BrowserSessions(self.config.settings)

        outcome = run_probe(self.config, sessions, self.aggregator, clock)
        return synthesize(
            self.aggregator,
            self.config,
            outcome.duration_ms,
            workers=outcome.workers,
            results=outcome.results,
        )
