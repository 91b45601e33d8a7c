"""
Probe configuration module.

This module defines the typed, immutable configuration for a probe run
and the loader that builds it from a JSON or YAML file. Every default is
resolved here, once, so the rest of the package never needs inline
fallbacks. A few settings can be overridden from environment variables
after the file is read.

Key Concepts:
- Frozen dataclasses for configuration that cannot drift mid-run
- Environment-variable overrides for CI-friendly tuning
- Validation with a single ``ConfigError`` type for the CLI to report
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from pageprobe.models import DEFAULT_TARGET_TIMEOUT_MS, TargetSpec
from pageprobe.naming import FORMAT_SUFFIXES

DEFAULT_CONFIG_PATH = "config.json"

DEFAULT_TARGET = TargetSpec(
    url="https://example.com",
    name="Home Page",
    timeout_ms=DEFAULT_TARGET_TIMEOUT_MS,
)

DEFAULT_ERROR_INDICATORS = (
    "404",
    "500",
    "error",
    "not found",
    "server error",
    "connection refused",
)

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS_S = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised when a configuration file is missing or invalid."""


@dataclass(frozen=True)
class Viewport:
    """Browser viewport size in CSS pixels."""

    width: int = 1280
    height: int = 720

    def to_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class RunSettings:
    """
    Settings that shape how a run executes.

    Attributes:
        parallel_workers: Number of concurrent workers.
        max_duration_s: Run deadline; checked between iterations.
        viewport: Viewport for every browser context.
        screenshot_delay_ms: Pause between the initial and delayed capture.
        full_page_screenshots: Capture the full scrollable page.
        screenshot_quality: JPEG quality (0-100); only applies when
            ``screenshot_format`` is ``jpeg``.
        screenshot_format: Image encoding, ``png`` or ``jpeg``.
        iterations_per_worker: Iterations each worker executes.
        headless: Launch the browser without a window.
        screenshot_dir: Directory that receives screenshot files.
    """

    parallel_workers: int = 3
    max_duration_s: float = 300.0
    viewport: Viewport = field(default_factory=Viewport)
    screenshot_delay_ms: int = 2000
    full_page_screenshots: bool = True
    screenshot_quality: int = 80
    screenshot_format: str = "png"
    iterations_per_worker: int = 1
    headless: bool = True
    screenshot_dir: str = "screenshots"


@dataclass(frozen=True)
class Thresholds:
    """Limits evaluated by the report. They never affect iteration logic."""

    page_load_p95_ms: int = 5000
    render_p95_ms: int = 3000
    max_errors: int = 5


@dataclass(frozen=True)
class QualityHeuristics:
    """
    Coarse page-health heuristics.

    A page "has content" when its trimmed body text is longer than
    ``min_content_length``. It has "critical errors" when the lowercased
    body text contains any of ``error_indicators``. Legitimate pages that
    mention e.g. "error" are flagged too; that imprecision is accepted.
    """

    min_content_length: int = 100
    error_indicators: tuple[str, ...] = DEFAULT_ERROR_INDICATORS


@dataclass(frozen=True)
class ProbeConfig:
    """Complete, resolved configuration for one run."""

    targets: tuple[TargetSpec, ...]
    settings: RunSettings = field(default_factory=RunSettings)
    thresholds: Thresholds = field(default_factory=Thresholds)
    quality: QualityHeuristics = field(default_factory=QualityHeuristics)

    def __post_init__(self) -> None:
        if not self.targets:
            raise ConfigError("At least one target URL must be configured")

    def to_dict(self) -> dict[str, Any]:
        """Return the resolved configuration in the file's own layout."""
        settings = self.settings
        return {
            "urls": [target.to_dict() for target in self.targets],
            "settings": {
                "parallelVUs": settings.parallel_workers,
                "maxDuration": settings.max_duration_s,
                "viewport": settings.viewport.to_dict(),
                "screenshotDelay": settings.screenshot_delay_ms,
                "fullPageScreenshots": settings.full_page_screenshots,
                "screenshotQuality": settings.screenshot_quality,
                "screenshotFormat": settings.screenshot_format,
                "iterations": settings.iterations_per_worker,
                "headless": settings.headless,
                "screenshotDir": settings.screenshot_dir,
            },
            "thresholds": {
                "pageLoadTime95p": self.thresholds.page_load_p95_ms,
                "initialRenderTime95p": self.thresholds.render_p95_ms,
                "maxErrors": self.thresholds.max_errors,
            },
            "quality": {
                "minContentLength": self.quality.min_content_length,
                "errorIndicators": list(self.quality.error_indicators),
            },
        }


# =====================================================================
# Value Parsing
# =====================================================================


def parse_duration(value: Any) -> float:
    """
    Convert a duration to seconds.

    Accepts plain numbers (seconds) or strings made of ``<number><unit>``
    parts, where unit is one of ``ms``, ``s``, ``m`` or ``h`` (for example
    ``"90s"``, ``"5m"`` or ``"1m30s"``).

    Raises:
        ConfigError: If the value cannot be parsed or is not positive.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip().lower()
        parts = _DURATION_PART_RE.findall(text)
        if not parts or "".join(number + unit for number, unit in parts) != text:
            raise ConfigError(f"Invalid duration: {value!r}")
        seconds = sum(float(number) * _DURATION_UNITS_S[unit] for number, unit in parts)

    if seconds <= 0:
        raise ConfigError(f"Duration must be positive: {value!r}")
    return seconds


def _as_int(value: Any, field_name: str, *, minimum: int = 0, maximum: int | None = None) -> int:
    """Coerce *value* to an ``int`` within bounds."""
    if isinstance(value, bool):
        raise ConfigError(f"Non-numeric value for {field_name}: {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"{field_name} must be a whole number, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Non-numeric value for {field_name}: {value!r}") from exc

    if number < minimum or (maximum is not None and number > maximum):
        upper = f" and <= {maximum}" if maximum is not None else ""
        raise ConfigError(f"{field_name} must be >= {minimum}{upper}, got {number}")
    return number


def _as_bool(value: Any, field_name: str) -> bool:
    """Coerce booleans and their common string spellings."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ConfigError(f"Invalid boolean for {field_name}: {value!r}")


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    """Return a nested mapping, treating a missing or null section as empty."""
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


# =====================================================================
# Section Builders
# =====================================================================


def _parse_targets(raw_urls: Any) -> tuple[TargetSpec, ...]:
    if raw_urls is None:
        return (DEFAULT_TARGET,)
    if not isinstance(raw_urls, list) or not raw_urls:
        raise ConfigError("'urls' must be a non-empty list")

    targets = []
    for index, entry in enumerate(raw_urls):
        if isinstance(entry, str):
            entry = {"url": entry}
        if not isinstance(entry, Mapping):
            raise ConfigError(f"urls[{index}] must be a mapping or a string")

        url = str(entry.get("url") or "").strip()
        if not url:
            raise ConfigError(f"urls[{index}] is missing a url")

        timeout = entry.get("timeout")
        targets.append(
            TargetSpec(
                url=url,
                name=str(entry.get("name") or url),
                timeout_ms=(
                    DEFAULT_TARGET_TIMEOUT_MS
                    if timeout is None
                    else _as_int(timeout, f"urls[{index}].timeout", minimum=1)
                ),
            )
        )
    return tuple(targets)


def _parse_settings(raw: Mapping[str, Any], target_count: int) -> RunSettings:
    defaults = RunSettings()
    raw_viewport = _section(raw, "viewport")

    viewport = Viewport(
        width=_as_int(raw_viewport.get("width", defaults.viewport.width), "viewport.width", minimum=1),
        height=_as_int(raw_viewport.get("height", defaults.viewport.height), "viewport.height", minimum=1),
    )

    max_duration = raw.get("maxDuration")
    iterations = raw.get("iterations")

    return RunSettings(
        parallel_workers=_as_int(
            raw.get("parallelVUs", defaults.parallel_workers), "parallelVUs", minimum=1
        ),
        max_duration_s=(
            defaults.max_duration_s if max_duration is None else parse_duration(max_duration)
        ),
        viewport=viewport,
        screenshot_delay_ms=_as_int(
            raw.get("screenshotDelay", defaults.screenshot_delay_ms), "screenshotDelay"
        ),
        full_page_screenshots=_as_bool(
            raw.get("fullPageScreenshots", defaults.full_page_screenshots),
            "fullPageScreenshots",
        ),
        screenshot_quality=_as_int(
            raw.get("screenshotQuality", defaults.screenshot_quality),
            "screenshotQuality",
            maximum=100,
        ),
        screenshot_format=_parse_format(raw.get("screenshotFormat", defaults.screenshot_format)),
        # One pass over every target per worker, like a per-VU-iterations executor.
        iterations_per_worker=(
            target_count if iterations is None else _as_int(iterations, "iterations", minimum=1)
        ),
        headless=_as_bool(raw.get("headless", defaults.headless), "headless"),
        screenshot_dir=str(raw.get("screenshotDir") or defaults.screenshot_dir),
    )


def _parse_format(value: Any) -> str:
    image_format = str(value).strip().lower()
    if image_format == "jpg":
        image_format = "jpeg"
    if image_format not in FORMAT_SUFFIXES:
        raise ConfigError(
            f"screenshotFormat must be one of {sorted(FORMAT_SUFFIXES)}, got {value!r}"
        )
    return image_format


def _parse_thresholds(raw: Mapping[str, Any]) -> Thresholds:
    defaults = Thresholds()
    return Thresholds(
        page_load_p95_ms=_as_int(
            raw.get("pageLoadTime95p", defaults.page_load_p95_ms), "pageLoadTime95p"
        ),
        render_p95_ms=_as_int(
            raw.get("initialRenderTime95p", defaults.render_p95_ms), "initialRenderTime95p"
        ),
        max_errors=_as_int(raw.get("maxErrors", defaults.max_errors), "maxErrors"),
    )


def _parse_quality(raw: Mapping[str, Any]) -> QualityHeuristics:
    defaults = QualityHeuristics()
    indicators = raw.get("errorIndicators")
    if indicators is None:
        indicators = defaults.error_indicators
    elif not isinstance(indicators, list):
        raise ConfigError("'quality.errorIndicators' must be a list of strings")

    return QualityHeuristics(
        min_content_length=_as_int(
            raw.get("minContentLength", defaults.min_content_length), "minContentLength"
        ),
        error_indicators=tuple(str(item).lower() for item in indicators if str(item)),
    )


# =====================================================================
# Loading
# =====================================================================


def parse_config(data: Mapping[str, Any] | None) -> ProbeConfig:
    """
    Build a ``ProbeConfig`` from an already-parsed document.

    Missing sections and fields fall back to the documented defaults.

    Raises:
        ConfigError: If any value is present but invalid.
    """
    data = data or {}
    if not isinstance(data, Mapping):
        raise ConfigError("Configuration root must be a mapping")

    targets = _parse_targets(data.get("urls"))
    return ProbeConfig(
        targets=targets,
        settings=_parse_settings(_section(data, "settings"), len(targets)),
        thresholds=_parse_thresholds(_section(data, "thresholds")),
        quality=_parse_quality(_section(data, "quality")),
    )


def apply_env_overrides(
    config: ProbeConfig, environ: Mapping[str, str] | None = None
) -> ProbeConfig:
    """
    Return a copy of *config* with environment overrides applied.

    Recognised variables: ``PAGEPROBE_PARALLEL_WORKERS``,
    ``PAGEPROBE_HEADLESS`` and ``PAGEPROBE_SCREENSHOT_DIR``.
    """
    environ = os.environ if environ is None else environ
    changes: dict[str, Any] = {}

    workers = environ.get("PAGEPROBE_PARALLEL_WORKERS")
    if workers:
        changes["parallel_workers"] = _as_int(workers, "PAGEPROBE_PARALLEL_WORKERS", minimum=1)

    headless = environ.get("PAGEPROBE_HEADLESS")
    if headless:
        changes["headless"] = _as_bool(headless, "PAGEPROBE_HEADLESS")

    screenshot_dir = environ.get("PAGEPROBE_SCREENSHOT_DIR")
    if screenshot_dir:
        changes["screenshot_dir"] = screenshot_dir

    if not changes:
        return config
    return replace(config, settings=replace(config.settings, **changes))


def load_config(
    path: str | Path | None = None, environ: Mapping[str, str] | None = None
) -> ProbeConfig:
    """
    Read and resolve the configuration file.

    Args:
        path: JSON or YAML file. If None, ``PAGEPROBE_CONFIG`` is consulted,
              falling back to ``config.json`` in the working directory.
        environ: Environment mapping for overrides (defaults to ``os.environ``).

    Returns:
        The resolved, immutable configuration.

    Raises:
        ConfigError: If the file is missing, unreadable, unparsable, or invalid.
    """
    environ = os.environ if environ is None else environ
    config_path = Path(path or environ.get("PAGEPROBE_CONFIG", DEFAULT_CONFIG_PATH))

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            if config_path.suffix.lower() == ".json":
                data = json.load(handle)
            else:
                data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {config_path}") from exc
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not parse {config_path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Could not read {config_path}: {exc}") from exc

    return apply_env_overrides(parse_config(data), environ)
