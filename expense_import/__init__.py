"""
Expense Import Package

PURPOSE: Package initialization for the expense import library
SCOPE: Public imports and package metadata
"""

__version__ = "1.0.0"
__description__ = "CSV/Excel expense import and receipt OCR pre-fill"

# Package imports for easier access
from .config import config, ImportConfig, OCRConfig
from .errors import (
    ExpenseImportError, ParseError, MappingError, OCRServiceError,
    PersistenceError, RateLimitError, ImportFailedError,
)
from .models import (
    FieldKey, DateParsingMode, RejectionReason, Category, RawRow, ColumnMatch,
    ColumnMapping, ExpenseRecord, RowRejection, ReceiptHints, ImportOutcome,
    ImportPreview, ValidationReport,
)
from .tabular import TabularParser, detect_file_kind
from .mapping import ColumnMapper, infer_mapping
from .validators import RowValidator, validate_row
from .parsers import ReceiptTextParser, parse_receipt_text
from .ocr_processor import ReceiptOCRClient
from .bulk_import import BulkImportCoordinator, ImportState
from .services import ExpenseImportService, ReceiptScanService

__all__ = [
    "config",
    "ImportConfig",
    "OCRConfig",
    "ExpenseImportError",
    "ParseError",
    "MappingError",
    "OCRServiceError",
    "PersistenceError",
    "RateLimitError",
    "ImportFailedError",
    "FieldKey",
    "DateParsingMode",
    "RejectionReason",
    "Category",
    "RawRow",
    "ColumnMatch",
    "ColumnMapping",
    "ExpenseRecord",
    "RowRejection",
    "ReceiptHints",
    "ImportOutcome",
    "ImportPreview",
    "ValidationReport",
    "TabularParser",
    "detect_file_kind",
    "ColumnMapper",
    "infer_mapping",
    "RowValidator",
    "validate_row",
    "ReceiptTextParser",
    "parse_receipt_text",
    "ReceiptOCRClient",
    "BulkImportCoordinator",
    "ImportState",
    "ExpenseImportService",
    "ReceiptScanService",
]
