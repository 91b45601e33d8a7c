"""
Post-navigation page-health checks.

The checks are deliberately cheap: a page "has content" when its body
text clears a length floor, and it shows "critical errors" when the body
mentions any indicator such as ``404`` or ``not found``. A page whose
real content contains the word "error" is flagged as well; that false
positive is accepted rather than patched around.
"""

from __future__ import annotations

import logging

from pageprobe.browser import ProbePage
from pageprobe.config import QualityHeuristics
from pageprobe.models import QualityVerdict

logger = logging.getLogger(__name__)


def has_error_indicator(text: str, indicators: tuple[str, ...]) -> bool:
    """Return True if the lowercased *text* contains any indicator."""
    lowered = text.lower()
    return any(indicator in lowered for indicator in indicators)


def assess(
    page: ProbePage,
    target_name: str,
    heuristics: QualityHeuristics | None = None,
) -> QualityVerdict:
    """
    Inspect the loaded page and return a quality verdict.

    Args:
        page: Page that finished loading.
        target_name: Display name used in log lines.
        heuristics: Content floor and error indicators; defaults apply
            when omitted.

    Returns:
        The verdict, or the all-false verdict if the title or body text
        could not be read.
    """
    heuristics = heuristics or QualityHeuristics()

    title = page.title()
    if not title.ok:
        logger.error(f"Quality check failed for {target_name}: {title.message}")
        return QualityVerdict.failed()

    body = page.text_content("body")
    if not body.ok:
        logger.error(f"Quality check failed for {target_name}: {body.message}")
        return QualityVerdict.failed()

    body_text = body.value or ""
    return QualityVerdict(
        has_title=bool(title.value),
        has_content=len(body_text.strip()) > heuristics.min_content_length,
        no_critical_errors=not has_error_indicator(body_text, heuristics.error_indicators),
    )
