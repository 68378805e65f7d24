"""
Expense Import - Pipeline Services

PURPOSE: End-to-end workflows over the import and receipt components
SCOPE: File -> preview -> validation -> bulk import; image -> text -> hints -> record
DEPENDENCIES: tabular, mapping, validators, bulk_import, ocr_processor, parsers

SERVICES INCLUDED:
- ExpenseImportService: CSV/Excel import with column auto-detection
- ReceiptScanService: receipt OCR pre-fill and confirmation
"""

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from .bulk_import import BulkImportCoordinator, PersistFn, ProgressFn
from .config import ImportConfig, config
from .errors import ImportFailedError, OCRServiceError, ParseError
from .mapping import ColumnMapper
from .models import (
    Category, ColumnMapping, DateParsingMode, ImportOutcome, ImportPreview, RawRow,
    ReceiptHints, ValidationReport,
)
from .ocr_processor import ReceiptOCRClient
from .parsers import ReceiptTextParser
from .tabular import TabularParser, detect_file_kind
from .validators import RowValidator, ValidationResult

logger = logging.getLogger(__name__)

CategoryLike = Union[Category, Mapping[str, Any]]


# ============================================================================
# TABULAR IMPORT
# ============================================================================

class ExpenseImportService:
    """
    Drives a spreadsheet import from raw upload to persisted records.

    Workflow: preview() parses the file and proposes a column mapping. When
    ``preview.needs_manual_mapping`` is set the caller lets the user fix the
    mapping (``mapping.assign``) before calling validate(). run_import() then
    hands the valid records to the caller's persistence function.
    """

    def __init__(self, import_config: Optional[ImportConfig] = None,
                 tabular_parser: Optional[TabularParser] = None,
                 mapper: Optional[ColumnMapper] = None,
                 coordinator: Optional[BulkImportCoordinator] = None):
        self.config = import_config or config
        self.tabular_parser = tabular_parser or TabularParser()
        self.mapper = mapper or ColumnMapper(self.config.COLUMN_VARIATIONS)
        self.coordinator = coordinator or BulkImportCoordinator(self.config)

    def preview(self, data: Union[bytes, str], file_kind: Optional[str] = None,
                filename: Optional[str] = None) -> ImportPreview:
        """Parse an uploaded file and auto-detect its column mapping."""
        if file_kind is None:
            if not filename:
                raise ParseError("Cannot tell the file type without a file name",
                                 kind=ParseError.UNSUPPORTED)
            file_kind = detect_file_kind(filename)

        rows = self.tabular_parser.parse(data, file_kind)
        headers = list(rows[0].headers)
        mapping = self.mapper.infer_mapping(headers)
        return ImportPreview(file_kind, headers, rows, mapping)

    def validate(self, source: Union[ImportPreview, Iterable[RawRow]], mapping: ColumnMapping,
                 categories: Iterable[CategoryLike] = (),
                 date_parsing_mode: Union[DateParsingMode, str, None] = None) -> ValidationReport:
        """Validate every row; raises MappingError when required fields are unmapped."""
        rows = source.rows if isinstance(source, ImportPreview) else list(source)
        validator = RowValidator(categories, date_parsing_mode or self.config.DATE_PARSING_MODE)
        return validator.validate_rows(rows, mapping)

    async def run_import(self, report: ValidationReport, persist: PersistFn,
                         strict: bool = False,
                         on_progress: Optional[ProgressFn] = None) -> ImportOutcome:
        """Persist the valid records and fold rejected rows into the outcome."""
        outcome = await self.coordinator.import_all(report.records, persist, on_progress=on_progress)
        for rejection in report.rejections:
            outcome.record_failure(rejection.row_index, rejection.detail)

        if outcome.failed_count:
            logger.warning(outcome.summary(self.config.MAX_ERROR_REASONS))
        if strict and outcome.failed_count:
            raise ImportFailedError(outcome)
        return outcome


# ============================================================================
# RECEIPT SCANNING
# ============================================================================

class ReceiptScanService:
    """
    Turns a receipt photo into an editable expense pre-fill.

    Workflow: Image -> OCR text -> heuristic hints -> (user edits) -> record.
    Service failures degrade to an empty pre-fill so manual entry is never
    blocked; only a missing API key is raised to the caller.
    """

    def __init__(self, ocr_client: ReceiptOCRClient,
                 parser: Optional[ReceiptTextParser] = None):
        self.ocr_client = ocr_client
        self.parser = parser or ReceiptTextParser()

    async def scan(self, image_base64: str) -> ReceiptHints:
        try:
            text = await self.ocr_client.extract_text(image_base64)
        except OCRServiceError as e:
            if e.kind == OCRServiceError.MISSING_CREDENTIAL:
                raise
            logger.warning(f"Could not scan receipt ({e.kind}): {e}; falling back to manual entry")
            return ReceiptHints(error=str(e))

        if not text.strip():
            logger.warning("No text extracted from image")
        return self.parser.parse(text)

    def to_record(self, hints: ReceiptHints, categories: Iterable[CategoryLike] = (),
                  category_name: Optional[str] = None,
                  overrides: Optional[Mapping[str, Any]] = None,
                  row_index: int = 1) -> ValidationResult:
        """Validate the (possibly user-edited) hints; a receipt must carry a date."""
        cells = hints.as_raw_row(row_index).to_dict()
        if category_name:
            cells['category'] = category_name
        for key, value in (overrides or {}).items():
            cells[key] = '' if value is None else str(value)

        validator = RowValidator(categories, DateParsingMode.STRICT)
        return validator.validate(RawRow(row_index, cells), ColumnMapping.identity())
