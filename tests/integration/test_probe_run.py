"""
Integration tests for complete probe runs.

Key Concepts Demonstrated:
- Per-worker fake pages to control timings across a whole run
- Monkeypatching the browser factory so the CLI runs without Chromium
- Asserting on exit codes and on the written summary file
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from pageprobe import create_probe
from pageprobe.cli import EXIT_PASS, EXIT_SCRIPT_ERROR, EXIT_THRESHOLD_BREACH, main
from pageprobe.metrics import ITERATIONS, PAGE_LOAD_TIME, SCREENSHOTS_TAKEN, TEST_ERRORS, URLS_PROCESSED
from pageprobe.runner import Probe
from tests.fakes import FakePage, FakeSessions

pytestmark = pytest.mark.integration

LOAD_TIMES_BY_WORKER = {1: 1000, 2: 1200}


def _timed_page(worker_id: int) -> FakePage:
    return FakePage(load_ms=LOAD_TIMES_BY_WORKER.get(worker_id, 1000))


@pytest.fixture
def two_target_config(config_factory, target_factory):
    targets = (
        target_factory(url="https://example.com", name="Home Page"),
        target_factory(url="https://example.com/pricing", name="Pricing"),
    )
    return config_factory(
        targets=targets, parallel_workers=2, iterations_per_worker=1, screenshot_delay_ms=500
    )


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    for name in (
        "PAGEPROBE_CONFIG",
        "PAGEPROBE_PARALLEL_WORKERS",
        "PAGEPROBE_HEADLESS",
        "PAGEPROBE_SCREENSHOT_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


# -----------------------------------------------------------------------------
# Probe Runs
# -----------------------------------------------------------------------------

def test_two_workers_two_targets_aggregate_into_one_report(two_target_config):
    # Arrange
    sessions = FakeSessions(page_factory=_timed_page)

    # Act
    report = Probe(two_target_config).run(sessions=sessions)

    # Assert
    page_load = report.trend(PAGE_LOAD_TIME)
    assert page_load["avg"] == 1100
    assert page_load["count"] == 2
    assert report.counter(URLS_PROCESSED) == 2
    assert report.counter(TEST_ERRORS) == 0
    assert report.counter(ITERATIONS) == 2
    assert report.counter(SCREENSHOTS_TAKEN) == 4
    assert [r.target_name for r in report.results] == ["Home Page", "Pricing"]
    assert report.check_pass_rate == 100
    assert report.passed is True


def test_screenshots_land_in_configured_directory(two_target_config):
    sessions = FakeSessions(page_factory=_timed_page)

    Probe(two_target_config).run(sessions=sessions)

    written = sorted(
        call["path"] for pages in sessions.pages.values() for page in pages for call in page.screenshots
    )
    assert len(written) == 4
    assert all(path.startswith(two_target_config.settings.screenshot_dir) for path in written)
    assert any(Path(path).name.startswith("Pricing_initial_vu2_") for path in written)


def test_failed_target_is_counted_and_reported(two_target_config):
    # Arrange: worker 2's page never finishes navigating
    def _page(worker_id: int) -> FakePage:
        page = _timed_page(worker_id)
        if worker_id == 2:
            page.goto_error = PlaywrightTimeoutError("Timeout 30000ms exceeded.")
        return page

    # Act
    report = Probe(two_target_config).run(sessions=FakeSessions(page_factory=_page))

    # Assert
    assert report.counter(URLS_PROCESSED) == 1
    assert report.counter(TEST_ERRORS) == 1
    assert report.trend(PAGE_LOAD_TIME)["count"] == 1
    assert report.results[1].succeeded is False


def test_create_probe_loads_config_file(tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "urls": [{"url": "https://example.com", "name": "Home Page", "timeout": 15000}],
                "settings": {"parallelVUs": 4},
            }
        ),
        encoding="utf-8",
    )

    probe = create_probe(config_path)

    assert isinstance(probe, Probe)
    assert probe.config.settings.parallel_workers == 4
    assert probe.config.targets[0].timeout_ms == 15000


# -----------------------------------------------------------------------------
# Command Line
# -----------------------------------------------------------------------------

@pytest.fixture
def fake_browser(monkeypatch):
    """Replace real Chromium sessions with fakes for every CLI run."""
    created = []

    def _factory(settings):
        sessions = FakeSessions(page_factory=_timed_page)
        created.append((settings, sessions))
        return sessions

    monkeypatch.setattr("pageprobe.runner.BrowserSessions", _factory)
    return created


@pytest.fixture
def write_config(tmp_path):
    def _write(**sections) -> str:
        document = {
            "urls": [
                {"url": "https://example.com", "name": "Home Page"},
                {"url": "https://example.com/about", "name": "About"},
            ],
            "settings": {
                "parallelVUs": 2,
                "iterations": 1,
                "screenshotDelay": 100,
                "screenshotDir": str(tmp_path / "screenshots"),
            },
        }
        document.update(sections)
        path = tmp_path / "config.json"
        path.write_text(json.dumps(document), encoding="utf-8")
        return str(path)

    return _write


def test_cli_run_writes_summary_and_exits_zero(fake_browser, write_config, tmp_path, capsys):
    # Arrange
    summary = tmp_path / "out" / "summary.json"

    # Act
    code = main(["--config", write_config(), "--summary", str(summary)])

    # Assert
    assert code == EXIT_PASS
    data = json.loads(summary.read_text(encoding="utf-8"))
    assert data["metrics"]["counters"][URLS_PROCESSED] == 2
    assert data["metrics"]["trends"][PAGE_LOAD_TIME]["avg"] == 1100
    assert data["passed"] is True
    assert len(data["iterations"]) == 2
    output = capsys.readouterr().out
    assert "=== Parallel URL Performance Test Summary ===" in output
    assert f"Detailed results saved in: {summary}" in output


def test_cli_threshold_breach_exits_one_only_when_gating(fake_browser, write_config, tmp_path):
    config = write_config(thresholds={"pageLoadTime95p": 500})
    summary = str(tmp_path / "summary.json")

    assert main(["--config", config, "--summary", summary]) == EXIT_PASS
    assert main(["--config", config, "--summary", summary, "--fail-on-thresholds"]) == (
        EXIT_THRESHOLD_BREACH
    )


def test_cli_overrides_reach_the_run(fake_browser, write_config, tmp_path):
    summary = tmp_path / "summary.json"

    main([
        "--config", write_config(), "--summary", str(summary),
        "--workers", "3", "--iterations", "2", "--headed",
    ])

    settings, sessions = fake_browser[0]
    assert settings.parallel_workers == 3
    assert settings.headless is False
    assert sorted(sessions.pages) == [1, 2, 3]
    assert json.loads(summary.read_text(encoding="utf-8"))["metrics"]["counters"][ITERATIONS] == 6


def test_cli_missing_config_exits_two(fake_browser, tmp_path, capsys):
    code = main(["--config", str(tmp_path / "missing.json")])

    assert code == EXIT_SCRIPT_ERROR
    assert "Invalid configuration" in capsys.readouterr().err
    assert fake_browser == []


@pytest.mark.parametrize(
    "sections",
    [
        {"urls": []},
        {"settings": {"parallelVUs": 0}},
        {"thresholds": {"maxErrors": "many"}},
    ],
)
def test_cli_invalid_config_exits_two(fake_browser, write_config, sections):
    assert main(["--config", write_config(**sections)]) == EXIT_SCRIPT_ERROR
    assert fake_browser == []


def test_cli_unreadable_config_exits_two(fake_browser, tmp_path, capsys):
    # Arrange: a directory and a file that is not UTF-8
    undecodable = tmp_path / "latin1.json"
    undecodable.write_bytes(b"\xff\xfe{}")

    # Act
    codes = [main(["--config", str(tmp_path)]), main(["--config", str(undecodable)])]

    # Assert
    assert codes == [EXIT_SCRIPT_ERROR, EXIT_SCRIPT_ERROR]
    assert capsys.readouterr().err.count("Invalid configuration") == 2
    assert fake_browser == []


def test_cli_rejects_non_positive_worker_override(fake_browser, write_config):
    assert main(["--config", write_config(), "--workers", "0"]) == EXIT_SCRIPT_ERROR
