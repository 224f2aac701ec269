from __future__ import annotations


class StoreError(RuntimeError):
    """Raised when a backing store cannot be read or written."""
