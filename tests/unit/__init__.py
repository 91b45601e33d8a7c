"""Unit tests for the page probe modules."""
