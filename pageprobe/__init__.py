"""
Page probe package.

Drives a pool of concurrent browser workers against a configured set of
target URLs, captures load/render timings and screenshots for every
iteration, and reduces the samples into a summary report.

The ``create_probe`` factory mirrors an application factory: it resolves
the configuration once and hands back a ready-to-run probe.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pageprobe.config import ProbeConfig
    from pageprobe.runner import Probe

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

__version__ = "0.1.0"


def create_probe(
    config_path: str | Path | None = None,
    config: ProbeConfig | None = None,
) -> Probe:
    """
    Create a probe for a single run.

    Args:
        config_path: Path to a JSON or YAML configuration file. If None,
                     the ``PAGEPROBE_CONFIG`` environment variable is used.
        config: An already-resolved configuration. Takes precedence over
                ``config_path``.

    Returns:
        A ``Probe`` with a fresh metrics aggregator.
    """
    from pageprobe.config import load_config
    from pageprobe.runner import Probe

    if config is None:
        config = load_config(config_path)

    logger.info(
        f"Creating probe for {len(config.targets)} target(s) "
        f"with {config.settings.parallel_workers} worker(s)"
    )
    return Probe(config)
