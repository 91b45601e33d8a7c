"""Fixtures for browser tests: a local site and a Chromium availability gate."""

from __future__ import annotations

import functools
import threading
from collections.abc import Generator
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

HOME_HTML = """<!doctype html>
<html>
  <head><title>Local Storefront</title></head>
  <body>
    <h1>Local Storefront</h1>
    <p>Hand-made tables, chairs and shelving, built to order in our own
    workshop and delivered to your door within three weeks of purchase.</p>
  </body>
</html>
"""

BROKEN_HTML = """<!doctype html>
<html>
  <head><title>Oops</title></head>
  <body><p>Internal Server Error</p></body>
</html>
"""


class _QuietHandler(SimpleHTTPRequestHandler):
    def log_message(self, format: str, *args) -> None:
        pass


@pytest.fixture(scope="session")
def chromium_available() -> None:
    """Skip browser tests when Chromium cannot be launched."""
    try:
        with sync_playwright() as playwright:
            playwright.chromium.launch(headless=True).close()
    except PlaywrightError as exc:
        pytest.skip(f"Chromium is not available: {exc.message.splitlines()[0]}")


@pytest.fixture(scope="session")
def site_root(tmp_path_factory) -> Path:
    root = tmp_path_factory.mktemp("site")
    (root / "index.html").write_text(HOME_HTML, encoding="utf-8")
    (root / "broken.html").write_text(BROKEN_HTML, encoding="utf-8")
    return root


@pytest.fixture(scope="session")
def live_site(site_root: Path) -> Generator[str, None, None]:
    """Serve ``site_root`` on an ephemeral local port and yield its base URL."""
    handler = functools.partial(_QuietHandler, directory=str(site_root))
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
