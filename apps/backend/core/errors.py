"""
Error taxonomy for the ingestion pipeline.

Run-level failures (ConfigError, fatal FetchError) abort a run.
Everything else is scoped to a single listing or field and is counted,
logged, and skipped over.
"""

from typing import List, Optional


class IngestError(Exception):
    """Base class for ingestion errors."""
    pass


class ConfigError(IngestError):
    """Unknown employer, missing credentials, bad connector config. Fatal."""
    pass


class FetchError(IngestError):
    """Network/API failure or page-load timeout."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ExtractionError(IngestError):
    """An expected DOM/content pattern was not found."""
    pass


class ValidationError(IngestError):
    """Raised when a job record fails validation."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors) if errors else "Invalid job record")
        self.errors = list(errors)


class PersistenceError(IngestError):
    """Store-level failure on a single upsert."""
    pass
