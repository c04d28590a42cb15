"""Test helper utilities for email retry engine tests."""

from datetime import datetime, timezone

from .memory_store import InMemoryFailureStore

# Clock value injected into engines under test
FIXED_NOW = datetime(2025, 11, 4, 12, 0, 0, tzinfo=timezone.utc)

__all__ = ["InMemoryFailureStore", "FIXED_NOW"]
