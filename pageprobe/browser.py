"""
Browser boundary for the page probe.

``ProbePage`` wraps a Playwright page the way a page object wraps a
screen: it exposes only the handful of actions the probe needs. Unlike a
test page object it never raises Playwright errors; every call returns a
``Result`` so the iteration routine can decide, step by step, whether to
continue or abandon the iteration.

``BrowserSessions`` owns browser lifecycles. The Playwright sync API is
bound to the thread that started it, so each worker thread launches its
own browser and opens a fresh context and page for every iteration.

Key Concepts:
- Page Object style adapter over ``playwright.sync_api.Page``
- Explicit ``Result`` values instead of exception unwinding
- Scoped acquisition (context managers) so pages, contexts and browsers
  are released on every exit path
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from playwright.sync_api import Browser, Page, Response, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from pageprobe.config import RunSettings
from pageprobe.models import ErrorKind, Result

logger = logging.getLogger(__name__)

_JPEG_SUFFIXES = {".jpg", ".jpeg"}


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ProbePage:
    """
    Result-returning adapter over a Playwright page.

    Attributes:
        page: Playwright page instance.
        clock: Callable returning epoch milliseconds; used for every
            timestamp taken while this page is being probed.
    """

    def __init__(self, page: Page, clock: Callable[[], int] | None = None):
        self.page = page
        self.clock = clock or epoch_ms

    def now_ms(self) -> int:
        return self.clock()

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def navigate(
        self, url: str, wait_until: str = "domcontentloaded", timeout_ms: int = 30000
    ) -> Result[Response]:
        """
        Navigate to *url* and wait for the given lifecycle event.

        A successful result may carry ``None`` when the navigation produced
        no response (e.g. same-document navigations).
        """
        try:
            response = self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            return Result.failure(ErrorKind.TIMEOUT, exc.message)
        except PlaywrightError as exc:
            return Result.failure(ErrorKind.NAVIGATION, exc.message)
        return Result.success(response)

    def wait_for_load_state(self, state: str = "load", timeout_ms: int = 30000) -> Result[None]:
        try:
            self.page.wait_for_load_state(state, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            return Result.failure(ErrorKind.TIMEOUT, exc.message)
        except PlaywrightError as exc:
            return Result.failure(ErrorKind.LOAD_STATE, exc.message)
        return Result.success()

    def pause(self, delay_ms: int) -> Result[None]:
        """Suspend this page's worker for *delay_ms* milliseconds."""
        try:
            self.page.wait_for_timeout(delay_ms)
        except PlaywrightError as exc:
            return Result.failure(ErrorKind.UNEXPECTED, exc.message)
        return Result.success()

    # -------------------------------------------------------------------------
    # Capture and Inspection
    # -------------------------------------------------------------------------

    def screenshot(self, path: str, *, full_page: bool = True, quality: int = 80) -> Result[None]:
        """
        Write a screenshot to *path*.

        Playwright only accepts ``quality`` for JPEG output, so it is
        dropped for PNG paths.
        """
        options: dict[str, Any] = {"path": path, "full_page": full_page}
        if Path(path).suffix.lower() in _JPEG_SUFFIXES:
            options["quality"] = quality

        try:
            self.page.screenshot(**options)
        except PlaywrightError as exc:
            return Result.failure(ErrorKind.SCREENSHOT, exc.message)
        return Result.success()

    def evaluate(self, script: str) -> Result[Any]:
        try:
            return Result.success(self.page.evaluate(script))
        except PlaywrightError as exc:
            return Result.failure(ErrorKind.EVALUATION, exc.message)

    def title(self) -> Result[str]:
        try:
            return Result.success(self.page.title())
        except PlaywrightError as exc:
            return Result.failure(ErrorKind.QUALITY, exc.message)

    def text_content(self, selector: str) -> Result[str]:
        try:
            return Result.success(self.page.text_content(selector))
        except PlaywrightError as exc:
            return Result.failure(ErrorKind.QUALITY, exc.message)


# =============================================================================
# Browser Sessions
# =============================================================================


class WorkerBrowser:
    """A launched browser owned by exactly one worker thread."""

    def __init__(self, browser: Browser, settings: RunSettings):
        self.browser = browser
        self.settings = settings

    @contextmanager
    def page(self) -> Iterator[ProbePage]:
        """Open an isolated context and page, closing both on exit."""
        context = self.browser.new_context(
            viewport=self.settings.viewport.to_dict(),
            ignore_https_errors=True,
        )
        try:
            page = context.new_page()
            try:
                yield ProbePage(page)
            finally:
                page.close()
        finally:
            context.close()


class BrowserSessions:
    """
    Launches one Chromium browser per worker.

    Attributes:
        settings: Run settings (viewport, headless mode).
    """

    def __init__(self, settings: RunSettings):
        self.settings = settings

    @contextmanager
    def worker(self, worker_id: int) -> Iterator[WorkerBrowser]:
        """Start Playwright in the calling thread and launch a browser."""
        with sync_playwright() as playwright:
            browser = playwright.chromium.launch(headless=self.settings.headless)
            logger.debug(f"VU {worker_id}: browser launched")
            try:
                yield WorkerBrowser(browser, self.settings)
            finally:
                browser.close()
