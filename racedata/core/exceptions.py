"""
Error taxonomy for the ingestion pipeline.
Race-local errors are caught by the orchestrator and flattened into the
statistics error list; FatalBatchError aborts the whole batch.
"""


class IngestionError(Exception):
    """Base class for every error raised by the ingestion core."""


class ValidationError(IngestionError):
    """Malformed or out-of-range input, detected before any write."""

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


class InvalidDateFormat(ValidationError):
    """Date string is neither M-D-YY nor YYYY-MM-DD, or names no real day."""


class DatabaseError(IngestionError):
    """A SQL statement failed. Always chained to the driver exception."""


class WinnerExtractionFailure(IngestionError):
    """No acceptable winner candidate. Never fails the race."""


class NoWinnerDeterminable(WinnerExtractionFailure):
    pass


class FatalBatchError(IngestionError):
    """Raised outside the per-race loop, e.g. the pool cannot hand out a connection."""
