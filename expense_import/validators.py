"""
Expense Import - Data Validation

PURPOSE: Turn mapped rows into validated ExpenseRecord objects
SCOPE: Amount/description/date checks, category lookup, per-row rejection reasons
DEPENDENCIES: typing, datetime, models
"""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from .config import config
from .errors import MappingError
from .models import (
    Category, ColumnMapping, DateParsingMode, ExpenseRecord, FieldKey, RawRow,
    RejectionReason, RowRejection, ValidationReport,
)

logger = logging.getLogger(__name__)

_CURRENCY_PATTERN = re.compile(r'[€$£₹¥]|\b(?:rs|sar|inr|usd|eur|gbp)\b\.?', re.IGNORECASE)

# Day-first before month-first; two-digit years and year-first last.
_NUMERIC_DATE_FORMATS = ('%d/%m/%Y', '%m/%d/%Y', '%d/%m/%y', '%m/%d/%y', '%Y/%m/%d')
# Spreadsheet exports often append a time of day.
_TIME_SUFFIXES = ('', ' %H:%M', ' %H:%M:%S')
_DATE_TIME_FORMATS = tuple(fmt + suffix for fmt in _NUMERIC_DATE_FORMATS for suffix in _TIME_SUFFIXES)

ValidationResult = Tuple[Optional[ExpenseRecord], Optional[RowRejection]]


def parse_amount(amount_str: Any) -> Optional[float]:
    """Parse a user-entered amount, tolerating currency symbols and separators."""
    if amount_str is None:
        return None

    cleaned = _CURRENCY_PATTERN.sub('', str(amount_str)).replace(' ', '').strip()
    if not cleaned:
        return None

    # Handle 1.524,55 as well as 1,524.55
    if '.' in cleaned and ',' in cleaned:
        if cleaned.rfind(',') > cleaned.rfind('.'):
            cleaned = cleaned.replace('.', '').replace(',', '.')
        else:
            cleaned = cleaned.replace(',', '')
    elif ',' in cleaned:
        after_comma = cleaned[cleaned.rfind(',') + 1:]
        if cleaned.count(',') == 1 and len(after_comma) in (1, 2) and after_comma.isdigit():
            cleaned = cleaned.replace(',', '.')
        else:
            cleaned = cleaned.replace(',', '')

    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_date_text(text: Optional[str]) -> Optional[datetime]:
    """Parse ISO text first, then DD/MM/YYYY, then MM/DD/YYYY."""
    value = (text or '').strip()
    if not value:
        return None

    iso_value = value[:-1] + '+00:00' if value[-1] in 'Zz' else value
    try:
        parsed = datetime.fromisoformat(iso_value)
    except ValueError:
        parsed = None

    if parsed is None:
        normalized = re.sub(r'\s+', ' ', re.sub(r'[-.]', '/', value))
        for fmt in _DATE_TIME_FORMATS:
            try:
                parsed = datetime.strptime(normalized, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_category(item: Union[Category, Mapping[str, Any]]) -> Category:
    return item if isinstance(item, Category) else Category.from_document(item)


class RowValidator:
    """Validates RawRow objects against a column mapping and a category snapshot."""

    def __init__(self, categories: Iterable[Union[Category, Mapping[str, Any]]] = (),
                 date_parsing_mode: Union[DateParsingMode, str, None] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self._categories_by_name: Dict[str, Category] = {}
        for item in categories:
            category = _as_category(item)
            # First category wins when names collide
            self._categories_by_name.setdefault(category.name.strip().lower(), category)
        self.date_parsing_mode = DateParsingMode(date_parsing_mode or config.DATE_PARSING_MODE)
        self._clock = clock or _utc_now

    @staticmethod
    def project(row: RawRow, mapping: ColumnMapping) -> Dict[FieldKey, Optional[str]]:
        """Flatten a row into field values; fields with no source column are None."""
        values: Dict[FieldKey, Optional[str]] = {}
        for field_key in FieldKey:
            if field_key is FieldKey.IGNORE:
                continue
            header = mapping.source_column(field_key)
            values[field_key] = row.get(header) if header is not None else None
        return values

    def match_category(self, name: Optional[str]) -> Optional[str]:
        if not name or not name.strip():
            return None
        category = self._categories_by_name.get(name.strip().lower())
        return category.id if category else None

    def validate(self, row: RawRow, mapping: ColumnMapping) -> ValidationResult:
        missing = mapping.missing_required_fields()
        if missing:
            raise MappingError(missing)
        return self._validate_projected(row.index, self.project(row, mapping))

    def validate_rows(self, rows: Iterable[RawRow], mapping: ColumnMapping) -> ValidationReport:
        """Validate many rows, collecting rejections instead of stopping."""
        missing = mapping.missing_required_fields()
        if missing:
            raise MappingError(missing)

        report = ValidationReport()
        for row in rows:
            record, rejection = self._validate_projected(row.index, self.project(row, mapping))
            if record is not None:
                report.records.append(record)
            else:
                report.rejections.append(rejection)

        logger.info(
            f"Validated {report.total} rows: {len(report.records)} valid, "
            f"{len(report.rejections)} rejected"
        )
        return report

    def _validate_projected(self, row_index: int,
                            values: Dict[FieldKey, Optional[str]]) -> ValidationResult:
        raw_amount = values.get(FieldKey.AMOUNT)
        amount = parse_amount(raw_amount)
        if amount is None or amount <= 0:
            return self._reject(row_index, RejectionReason.INVALID_AMOUNT,
                                f'Invalid amount "{raw_amount or ""}"')

        description = (values.get(FieldKey.DESCRIPTION) or '').strip()
        if not description:
            return self._reject(row_index, RejectionReason.MISSING_DESCRIPTION,
                                "Description is required")

        category_text = values.get(FieldKey.CATEGORY)
        category_id = self.match_category(category_text)
        if category_text and category_text.strip() and category_id is None:
            logger.info(f"Row {row_index}: no category named '{category_text.strip()}', importing uncategorized")

        raw_date = (values.get(FieldKey.DATE) or '').strip()
        if raw_date:
            parsed_date = parse_date_text(raw_date)
            if parsed_date is None:
                return self._reject(row_index, RejectionReason.INVALID_DATE,
                                    f'Invalid date "{raw_date}"')
        elif self.date_parsing_mode is DateParsingMode.STRICT:
            return self._reject(row_index, RejectionReason.MISSING_DATE, "Date is required")
        else:
            parsed_date = self._clock()

        record = ExpenseRecord(
            amount=amount,
            description=description,
            created_at=parsed_date.isoformat(),
            category_id=category_id,
            notes=(values.get(FieldKey.NOTES) or '').strip(),
            source_row=row_index,
        )
        return record, None

    @staticmethod
    def _reject(row_index: int, reason: RejectionReason, detail: str) -> ValidationResult:
        rejection = RowRejection(row_index, reason, detail)
        logger.debug(rejection.message)
        return None, rejection


def validate_row(row: RawRow, mapping: ColumnMapping,
                 categories: Iterable[Union[Category, Mapping[str, Any]]] = (),
                 date_parsing_mode: Union[DateParsingMode, str, None] = None) -> ValidationResult:
    """Validate a single row in one call."""
    return RowValidator(categories, date_parsing_mode).validate(row, mapping)
