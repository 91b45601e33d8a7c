"""Screenshot capture with failure isolation."""

from __future__ import annotations

import logging
from pathlib import Path

from pageprobe.browser import ProbePage
from pageprobe.config import RunSettings
from pageprobe.metrics import SCREENSHOTS_TAKEN, MetricsAggregator
from pageprobe.models import CaptureOutcome

logger = logging.getLogger(__name__)


def capture(
    page: ProbePage,
    path: str,
    description: str,
    settings: RunSettings,
    aggregator: MetricsAggregator,
) -> CaptureOutcome:
    """
    Take one screenshot and count it if it was written.

    A failed capture is logged and reported through the returned outcome.
    It never raises and never counts as a test error, so the caller can
    carry on with the iteration.

    Args:
        page: Page to capture.
        path: Destination file; its directory is created if needed.
        description: Human-readable label for log lines.
        settings: Run settings supplying full-page and quality options.
        aggregator: Receives the ``screenshots_taken`` increment.

    Returns:
        ``CaptureOutcome`` with ``ok`` set when the file was written.
    """
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error(f"Failed to take screenshot ({description}): {exc}")
        return CaptureOutcome(ok=False, path=path, error=str(exc))

    result = page.screenshot(
        path,
        full_page=settings.full_page_screenshots,
        quality=settings.screenshot_quality,
    )
    if not result.ok:
        logger.error(f"Failed to take screenshot ({description}): {result.message}")
        return CaptureOutcome(ok=False, path=path, error=result.message)

    aggregator.increment(SCREENSHOTS_TAKEN)
    logger.info(f"Screenshot taken: {description} -> {path}")
    return CaptureOutcome(ok=True, path=path)
