"""Tests - Test suite and the in-memory indexer used by it."""
