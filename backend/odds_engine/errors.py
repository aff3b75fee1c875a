from __future__ import annotations


class OddsEngineError(RuntimeError):
    """Base error for analytics engine failures."""


class InvalidQuote(OddsEngineError):
    """Raised when a raw quote cannot be normalized. Never stored."""


class InsufficientBooks(OddsEngineError):
    """Raised when no book contributes to a consensus. Callers treat it as no signal."""


class NoClosingPriceFound(OddsEngineError):
    """Raised when no quote exists at or before a game's start time."""


class AnnotationTimeout(OddsEngineError):
    """Raised when the rationale generator does not answer within its budget."""


class PartialFetchFailure(OddsEngineError):
    """Raised for a single leg/book fetch failure inside a batch operation."""


class SnapshotStoreUnavailable(OddsEngineError):
    """Raised when the snapshot store cannot be reached at all."""
