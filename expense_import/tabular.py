"""
Expense Import - Tabular File Parsing

PURPOSE: Decode CSV and Excel uploads into normalized rows
SCOPE: Header normalization, blank-row skipping, first-sheet spreadsheet reading
DEPENDENCIES: csv, openpyxl
"""

import csv
import io
import logging
from datetime import date, datetime, time
from pathlib import PurePath
from typing import Any, Iterable, List, Optional, Sequence, Union

from openpyxl import load_workbook

from .errors import ParseError
from .models import RawRow

logger = logging.getLogger(__name__)

CSV = 'csv'
XLSX = 'xlsx'

_EXTENSION_KINDS = {'.csv': CSV, '.xlsx': XLSX, '.xlsm': XLSX}


def detect_file_kind(filename: str) -> str:
    """Guess the file kind from an upload's file name."""
    suffix = PurePath(filename or '').suffix.lower()
    kind = _EXTENSION_KINDS.get(suffix)
    if kind is None:
        raise ParseError(f"Unsupported file type: {suffix or filename!r}", kind=ParseError.UNSUPPORTED)
    return kind


def normalize_header(value: Any) -> str:
    return cell_to_text(value).strip().lower()


def cell_to_text(value: Any) -> str:
    """Render a spreadsheet cell the way a user would read it."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


class TabularParser:
    """Turns CSV text or xlsx bytes into RawRow objects."""

    def parse(self, data: Union[bytes, str], file_kind: str) -> List[RawRow]:
        """Parse ``data`` as ``file_kind`` ("csv" or "xlsx")."""
        kind = (file_kind or '').lower().lstrip('.')
        if kind == CSV:
            records = self._read_csv(data)
        elif kind in (XLSX, 'xlsm'):
            records = self._read_xlsx(data)
        else:
            raise ParseError(f"Unsupported file type: {file_kind!r}", kind=ParseError.UNSUPPORTED)

        rows = self._build_rows(records)
        logger.info(f"Parsed {len(rows)} {kind} rows with {len(rows[0].cells)} columns")
        return rows

    def _read_csv(self, data: Union[bytes, str]) -> List[List[str]]:
        if isinstance(data, bytes):
            try:
                text = data.decode('utf-8-sig')
            except UnicodeDecodeError as e:
                raise ParseError(f"CSV file is not valid UTF-8: {e}") from e
        else:
            text = data.lstrip('\ufeff')

        try:
            return list(csv.reader(io.StringIO(text, newline='')))
        except csv.Error as e:
            raise ParseError(f"CSV parsing failed: {e}") from e

    def _read_xlsx(self, data: Union[bytes, str]) -> List[List[str]]:
        if isinstance(data, str):
            raise ParseError("Excel files must be provided as bytes")

        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except Exception as e:
            raise ParseError(f"Failed to read Excel file: {e}") from e

        try:
            if not workbook.worksheets:
                return []
            sheet = workbook.worksheets[0]
            return [
                [cell_to_text(value) for value in row]
                for row in sheet.iter_rows(values_only=True)
            ]
        finally:
            workbook.close()

    def _build_rows(self, records: Iterable[Sequence[str]]) -> List[RawRow]:
        headers: Optional[List[str]] = None
        rows: List[RawRow] = []

        for record in records:
            if not any((cell or '').strip() for cell in record):
                continue
            if headers is None:
                headers = self._unique_headers(normalize_header(cell) for cell in record)
                continue
            cells = {
                header: (record[i] if i < len(record) and record[i] is not None else '')
                for i, header in enumerate(headers)
            }
            rows.append(RawRow(len(rows) + 1, cells))

        if headers is None:
            raise ParseError("File has no header row")
        if not rows:
            raise ParseError("File must have at least a header row and one data row")
        return rows

    @staticmethod
    def _unique_headers(raw_headers: Iterable[str]) -> List[str]:
        headers: List[str] = []
        seen = set()
        for position, header in enumerate(raw_headers, start=1):
            name = header or f"column_{position}"
            candidate, n = name, 1
            while candidate in seen:
                n += 1
                candidate = f"{name} ({n})"
            seen.add(candidate)
            headers.append(candidate)
        return headers
