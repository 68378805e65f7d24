"""
Expense Import - Error Types

PURPOSE: Exception taxonomy shared by the import and receipt pipelines
SCOPE: File-level, mapping, OCR service, persistence and strict-import failures
DEPENDENCIES: None
"""

from typing import List, Optional


class ExpenseImportError(Exception):
    """Base class for every error raised by this package."""


class ParseError(ExpenseImportError):
    """The source file could not be turned into rows."""

    MALFORMED = 'malformed'
    UNSUPPORTED = 'unsupported'

    def __init__(self, message: str, kind: str = MALFORMED):
        super().__init__(message)
        self.kind = kind


class MappingError(ExpenseImportError):
    """Required fields are not mapped; the caller must ask for a manual mapping."""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            f"Please map the following required fields: {', '.join(self.missing)}"
        )


class OCRServiceError(ExpenseImportError):
    """The text-extraction service could not produce text for an image."""

    MISSING_CREDENTIAL = 'missing_credential'
    NETWORK = 'network'
    PROCESSING = 'processing'
    NO_RESULTS = 'no_results'

    def __init__(self, message: str, kind: str):
        super().__init__(message)
        self.kind = kind


class PersistenceError(ExpenseImportError):
    """A persistence collaborator failed to store a record."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(PersistenceError):
    """The persistence backend asked us to slow down."""

    def __init__(self, message: str = 'Rate limit exceeded', status_code: int = 429):
        super().__init__(message, status_code=status_code)


class ImportFailedError(ExpenseImportError):
    """Raised by strict-mode imports when at least one record failed."""

    def __init__(self, outcome):
        self.outcome = outcome
        super().__init__(
            f"{outcome.failed_count} of {outcome.total} records failed to import"
        )
