"""
Command-line entry point for a probe run.

Loads the configuration, runs every worker, prints the text summary and
writes ``summary.json``. Exit codes follow a three-state convention so
that CI can tell a slow site from a broken run:

- ``0`` - run completed (and thresholds passed, when gating is enabled)
- ``1`` - at least one threshold was breached and ``--fail-on-thresholds``
  was given
- ``2`` - the probe itself failed (missing or invalid config, crash)
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from pageprobe import create_probe
from pageprobe.config import ConfigError, ProbeConfig, load_config
from pageprobe.report import DEFAULT_SUMMARY_PATH, write_summary

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for a probe run."""
    parser = argparse.ArgumentParser(
        prog="pageprobe",
        description="Load configured pages in parallel browsers and report timings.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a JSON or YAML config file (default: $PAGEPROBE_CONFIG or config.json)",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=Path(DEFAULT_SUMMARY_PATH),
        help="Where to write the JSON summary",
    )
    parser.add_argument("--workers", type=int, help="Override settings.parallelVUs")
    parser.add_argument("--iterations", type=int, help="Override settings.iterations")
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser windows instead of running headless",
    )
    parser.add_argument(
        "--fail-on-thresholds",
        action="store_true",
        help="Exit with code 1 when any threshold is breached",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def _apply_cli_overrides(config: ProbeConfig, args: argparse.Namespace) -> ProbeConfig:
    """Fold command-line overrides into the resolved configuration."""
    changes = {}
    if args.workers is not None:
        if args.workers < 1:
            raise ConfigError(f"--workers must be >= 1, got {args.workers}")
        changes["parallel_workers"] = args.workers
    if args.iterations is not None:
        if args.iterations < 1:
            raise ConfigError(f"--iterations must be >= 1, got {args.iterations}")
        changes["iterations_per_worker"] = args.iterations
    if args.headed:
        changes["headless"] = False

    if not changes:
        return config
    return replace(config, settings=replace(config.settings, **changes))


def main(argv: list[str] | None = None) -> int:
    """
    Entry point: load config, run the probe, report, and pick an exit code.

    Returns:
        ``EXIT_PASS`` (0), ``EXIT_THRESHOLD_BREACH`` (1) or
        ``EXIT_SCRIPT_ERROR`` (2).
    """
    args = parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    try:
        config = _apply_cli_overrides(load_config(args.config), args)
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR

    try:
        report = create_probe(config=config).run()
        summary_path = write_summary(report, args.summary)
    except Exception as exc:
        logger.exception("Probe run failed")
        print(f"Probe run failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR

    print(report.render_text(summary_path=str(summary_path)))

    if args.fail_on_thresholds and not report.passed:
        return EXIT_THRESHOLD_BREACH
    return EXIT_PASS


if __name__ == "__main__":
    raise SystemExit(main())
