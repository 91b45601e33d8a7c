"""
File-name helpers for screenshot artifacts.

Screenshot names embed the target's display name, so that name must be
reduced to a short, filesystem-safe slug first. The allowed character
set excludes ``.`` and ``/``, which rules out path traversal.
"""

from __future__ import annotations

import re
from pathlib import Path

MAX_SLUG_LENGTH = 50

PHASE_INITIAL = "initial"
PHASE_DELAYED = "delayed"
PHASE_ERROR = "ERROR"

# Playwright picks the encoding from the file suffix.
FORMAT_SUFFIXES = {"png": "png", "jpeg": "jpg"}

_SCHEME_RE = re.compile(r"https?://")
_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9_-]")
_UNDERSCORE_RUN_RE = re.compile(r"_+")


def sanitize(name: str) -> str:
    """
    Turn a human-readable test name into a filesystem-safe slug.

    The first ``http://`` or ``https://`` is removed, every character
    outside ``[A-Za-z0-9_-]`` becomes ``_``, runs of ``_`` collapse to
    one, and the result is truncated to 50 characters before leading and
    trailing underscores are stripped.

    Args:
        name: Arbitrary display name or URL.

    Returns:
        The slug; empty for empty input.
    """
    slug = _SCHEME_RE.sub("", name, count=1)
    slug = _DISALLOWED_RE.sub("_", slug)
    slug = _UNDERSCORE_RUN_RE.sub("_", slug)
    return slug[:MAX_SLUG_LENGTH].strip("_")


def screenshot_path(
    directory: str | Path,
    target_name: str,
    phase: str,
    worker_id: int,
    timestamp_ms: int,
    image_format: str = "png",
) -> str:
    """
    Build the path for one screenshot.

    Args:
        directory: Screenshot output directory.
        target_name: Display name of the target (sanitized here).
        phase: One of ``initial``, ``delayed`` or ``ERROR``.
        worker_id: 1-based worker identifier.
        timestamp_ms: Epoch milliseconds identifying the capture point.
        image_format: ``png`` or ``jpeg``; selects the file suffix.

    Returns:
        ``{directory}/{slug}_{phase}_vu{worker}_{timestamp}.{png|jpg}`` as a string.

    Raises:
        ValueError: If *image_format* is not a supported format.
    """
    try:
        suffix = FORMAT_SUFFIXES[image_format]
    except KeyError:
        raise ValueError(f"Unsupported screenshot format: {image_format!r}") from None
    file_name = f"{sanitize(target_name)}_{phase}_vu{worker_id}_{timestamp_ms}.{suffix}"
    return str(Path(directory) / file_name)
