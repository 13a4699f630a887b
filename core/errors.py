"""
Store and engine errors.

Input problems (bad quantities, empty carts, mismatched totals) raise
ValueError like the rest of the services. The classes here are for the
store boundary.
"""

from __future__ import annotations


class StallError(Exception):
    pass


class ReadFailure(StallError):
    """A read failed or did not return the expected row(s)."""


class WriteFailure(StallError):
    """The store rejected or failed an insert/update/delete."""


class ConcurrentModification(WriteFailure):
    """The row changed since the caller last read it."""
