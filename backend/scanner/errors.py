"""
scanner/errors.py — Exception taxonomy.

Per-symbol upstream failures never raise past the fetch layer; they show up
as missing entries. Only losing the whole universe or every quote aborts a
run, and those errors leave any cached result in place.
"""
from __future__ import annotations


class ScannerError(RuntimeError):
    """Base class for pipeline-level failures."""


class ConstituentFetchError(ScannerError):
    """A single index constituent source could not be fetched or parsed."""

    def __init__(self, index_key: str, reason: str):
        super().__init__(f"Failed to fetch {index_key} constituents: {reason}")
        self.index_key = index_key
        self.reason = reason


class UniverseUnavailableError(ScannerError):
    """No constituents could be obtained from any configured index."""


class QuotesUnavailableError(ScannerError):
    """The quote provider returned nothing for a non-empty universe."""


class DataValidationError(ValueError):
    """A provider payload failed validation at the parse boundary."""
