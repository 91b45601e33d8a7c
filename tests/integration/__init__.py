"""
Integration test package for the page probe.

Drives complete runs (worker pool, aggregator, report and CLI) with fake
browser sessions and demonstrates:
- End-to-end metric aggregation across workers
- Exit-code behaviour of the command-line entry point
- Summary file contents
"""
