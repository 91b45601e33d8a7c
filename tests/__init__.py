"""
Test suite for the page probe.

This package contains:
- unit/: Tests for individual modules against fake pages
- integration/: Whole runs through ``Probe`` and the CLI, no browser
- e2e/: Runs against a real headless Chromium
"""
