"""
Shared pytest fixtures for the page probe test suite.

Provides configuration, metrics and fake-browser fixtures. Nothing here
launches a real browser; the e2e package has its own fixtures for that.

Key Concepts Demonstrated:
- Factory fixtures for flexible test-data creation
- Fake collaborators with simulated time instead of sleeps
- ``tmp_path`` isolation for screenshot and summary files
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Any

import pytest
from faker import Faker

from pageprobe.browser import ProbePage
from pageprobe.config import ProbeConfig, RunSettings
from pageprobe.metrics import MetricsAggregator
from pageprobe.models import TargetSpec
from tests.fakes import FakeClock, FakePage

fake = Faker()


# -----------------------------------------------------------------------------
# Configuration Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def target_factory() -> Callable[..., TargetSpec]:
    """
    Factory fixture for creating TargetSpec instances.

    Example:
        def test_something(target_factory):
            target = target_factory(name="Home Page")
    """

    def _create_target(**kwargs: Any) -> TargetSpec:
        defaults = {
            "url": f"https://{fake.domain_name()}/{fake.uri_path()}",
            "name": fake.catch_phrase(),
            "timeout_ms": 30000,
        }
        defaults.update(kwargs)
        return TargetSpec(**defaults)

    return _create_target


@pytest.fixture
def config_factory(tmp_path, target_factory) -> Callable[..., ProbeConfig]:
    """
    Factory fixture for run configurations writing screenshots to tmp_path.

    Keyword arguments other than ``targets`` override ``RunSettings`` fields.
    """

    def _create_config(targets: tuple[TargetSpec, ...] | None = None, **settings: Any) -> ProbeConfig:
        if targets is None:
            targets = (target_factory(),)
        run_settings = replace(
            RunSettings(screenshot_dir=str(tmp_path / "screenshots")), **settings
        )
        return ProbeConfig(targets=tuple(targets), settings=run_settings)

    return _create_config


@pytest.fixture
def probe_config(config_factory) -> ProbeConfig:
    """Single-target configuration with default settings."""
    return config_factory()


# -----------------------------------------------------------------------------
# Metrics and Page Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def aggregator() -> MetricsAggregator:
    """Fresh metrics aggregator for each test."""
    return MetricsAggregator()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_page(fake_clock) -> FakePage:
    """Healthy fake page: 1000 ms to DOM content loaded, 300 ms to load."""
    return FakePage(clock=fake_clock)


@pytest.fixture
def probe_page(fake_page) -> ProbePage:
    """``ProbePage`` adapter over the fake page, sharing its clock."""
    return ProbePage(fake_page, clock=fake_page.clock)
