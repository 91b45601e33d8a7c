"""
Browser test package for the page probe.

Runs the probe against a real headless Chromium and local ``file://``
pages. Tests skip when the Playwright browsers are not installed
(``playwright install chromium``).
"""
