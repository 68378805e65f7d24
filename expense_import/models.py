"""
Expense Import - Data Models

PURPOSE: Typed values passed between the import and receipt components
SCOPE: Rows, column mappings, validated records, receipt hints, outcomes
DEPENDENCIES: dataclasses, enum

Rows coming out of a spreadsheet library are converted into RawRow right
away; everything downstream works with these types instead of loose dicts.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set, Tuple, Union


class FieldKey(str, Enum):
    """Semantic expense field a source column can feed."""
    AMOUNT = 'amount'
    DESCRIPTION = 'description'
    CATEGORY = 'category'
    DATE = 'date'
    NOTES = 'notes'
    IGNORE = 'ignore'


REQUIRED_FIELDS: Tuple[FieldKey, ...] = (FieldKey.AMOUNT, FieldKey.DESCRIPTION)

# Confidence scores produced by the column mapper
NO_MATCH = 0
PARTIAL_MATCH = 60
CONTAINS_MATCH = 80
EXACT_MATCH = 100
CONFIDENT_THRESHOLD = CONTAINS_MATCH


class DateParsingMode(str, Enum):
    """What to do with a row that has no date at all."""
    STRICT = 'strict'
    LENIENT = 'lenient'


class RejectionReason(str, Enum):
    INVALID_AMOUNT = 'InvalidAmount'
    MISSING_DESCRIPTION = 'MissingDescription'
    INVALID_DATE = 'InvalidDate'
    MISSING_DATE = 'MissingDate'


@dataclass(frozen=True)
class Category:
    """Caller-owned category snapshot entry."""
    id: str
    name: str

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> 'Category':
        """Build from a backend document shaped like {"$id", "category_name"}."""
        return cls(id=str(document['$id']), name=str(document.get('category_name') or ''))


@dataclass(frozen=True)
class RawRow:
    """One data row of a tabular file keyed by normalized header."""
    index: int
    cells: Dict[str, str]

    @property
    def headers(self) -> Tuple[str, ...]:
        return tuple(self.cells)

    def get(self, header: str, default: str = '') -> str:
        return self.cells.get(header, default)

    def to_dict(self) -> Dict[str, str]:
        return dict(self.cells)


@dataclass(frozen=True)
class ColumnMatch:
    field: FieldKey
    confidence: int


class ColumnMapping:
    """Header -> (field, confidence) assignment for one imported file.

    Built by the column mapper, then optionally edited by the user through
    ``assign`` before the rows are validated.
    """

    def __init__(self, matches: Optional[Mapping[str, ColumnMatch]] = None):
        self._matches: Dict[str, ColumnMatch] = dict(matches or {})

    def __getitem__(self, header: str) -> ColumnMatch:
        return self._matches[header]

    def __contains__(self, header: object) -> bool:
        return header in self._matches

    def __iter__(self) -> Iterator[str]:
        return iter(self._matches)

    def __len__(self) -> int:
        return len(self._matches)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ColumnMapping):
            return NotImplemented
        return self._matches == other._matches

    def __repr__(self) -> str:
        return f"ColumnMapping({self._matches!r})"

    def items(self):
        return self._matches.items()

    def assign(self, header: str, field_key: Union[FieldKey, str],
               confidence: int = EXACT_MATCH) -> None:
        """Manually (re)assign a header; a user choice counts as fully confident."""
        key = FieldKey(field_key)
        self._matches[header.strip().lower()] = ColumnMatch(
            key, NO_MATCH if key is FieldKey.IGNORE else confidence
        )

    def fields(self) -> Set[FieldKey]:
        return {m.field for m in self._matches.values() if m.field is not FieldKey.IGNORE}

    def missing_required_fields(self) -> List[str]:
        mapped = self.fields()
        return [f.value for f in REQUIRED_FIELDS if f not in mapped]

    def has_required_fields(self) -> bool:
        return not self.missing_required_fields()

    @property
    def required_fields_confident(self) -> bool:
        if not self.has_required_fields():
            return False
        return all(
            m.confidence >= CONFIDENT_THRESHOLD
            for m in self._matches.values()
            if m.field in REQUIRED_FIELDS
        )

    @property
    def needs_manual_mapping(self) -> bool:
        return not self.required_fields_confident

    def source_column(self, field_key: FieldKey) -> Optional[str]:
        """Header feeding ``field_key``: best confidence, first header on ties."""
        best_header, best_score = None, -1
        for header, match in self._matches.items():
            if match.field is field_key and match.confidence > best_score:
                best_header, best_score = header, match.confidence
        return best_header

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            header: {'field': m.field.value, 'confidence': m.confidence}
            for header, m in self._matches.items()
        }

    @classmethod
    def identity(cls) -> 'ColumnMapping':
        """Mapping whose headers are the field names themselves."""
        return cls({
            f.value: ColumnMatch(f, EXACT_MATCH)
            for f in FieldKey if f is not FieldKey.IGNORE
        })


@dataclass(frozen=True)
class ExpenseRecord:
    """A validated expense, ready for a persistence collaborator."""
    amount: float
    description: str
    created_at: str
    category_id: Optional[str] = None
    notes: str = ''
    source_row: Optional[int] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            'amount': self.amount,
            'description': self.description,
            'categoryId': self.category_id,
            'notes': self.notes,
            'createdAt': self.created_at,
        }


@dataclass(frozen=True)
class RowRejection:
    row_index: int
    reason: RejectionReason
    detail: str

    @property
    def message(self) -> str:
        return f"Row {self.row_index}: {self.detail}"

    def to_dict(self) -> Dict[str, Any]:
        return {'row': self.row_index, 'reason': self.reason.value, 'message': self.message}


@dataclass(frozen=True)
class HintEvidence:
    """Where a receipt hint came from, so a user can judge it."""
    line_number: int
    text: str
    rule: str


@dataclass
class ReceiptHints:
    """Best-effort, editable pre-fill extracted from receipt text."""
    amount: Optional[float] = None
    date: Optional[str] = None
    description: Optional[str] = None
    evidence: Dict[str, HintEvidence] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.amount is None and self.date is None and self.description is None

    def as_raw_row(self, index: int = 1) -> RawRow:
        return RawRow(index, {
            'amount': '' if self.amount is None else str(self.amount),
            'description': self.description or '',
            'date': self.date or '',
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            'amount': self.amount,
            'date': self.date,
            'description': self.description,
            'evidence': {
                name: {'line': ev.line_number, 'text': ev.text, 'rule': ev.rule}
                for name, ev in self.evidence.items()
            },
            'error': self.error,
        }


@dataclass(frozen=True)
class ImportErrorEntry:
    row_index: int
    reason: str


@dataclass
class ImportOutcome:
    """Aggregate result of one bulk import."""
    success_count: int = 0
    failed_count: int = 0
    errors: List[ImportErrorEntry] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.failed_count

    def record_success(self, count: int = 1) -> None:
        self.success_count += count

    def record_failure(self, row_index: int, reason: str) -> None:
        self.failed_count += 1
        self.errors.append(ImportErrorEntry(row_index, reason))

    def summary(self, max_reasons: int = 5) -> str:
        text = f"Imported {self.success_count} of {self.total} expenses."
        if not self.errors:
            return text
        ordered = sorted(self.errors, key=lambda e: e.row_index)
        lines = [f"Row {e.row_index}: {e.reason}" for e in ordered[:max_reasons]]
        if len(ordered) > max_reasons:
            lines.append('...')
        return f"{text}\n{self.failed_count} rows had errors:\n" + '\n'.join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success_count': self.success_count,
            'failed_count': self.failed_count,
            'errors': [{'row': e.row_index, 'reason': e.reason} for e in self.errors],
        }


@dataclass
class ImportPreview:
    """Parsed file plus the inferred column mapping, before validation."""
    file_kind: str
    headers: List[str]
    rows: List[RawRow]
    mapping: ColumnMapping

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def needs_manual_mapping(self) -> bool:
        return self.mapping.needs_manual_mapping

    def sample(self, n: int = 3) -> List[Dict[str, str]]:
        return [row.to_dict() for row in self.rows[:n]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file_kind': self.file_kind,
            'headers': list(self.headers),
            'row_count': self.row_count,
            'sample': self.sample(),
            'mapping': self.mapping.to_dict(),
            'needs_manual_mapping': self.needs_manual_mapping,
            'missing_fields': self.mapping.missing_required_fields(),
        }


@dataclass
class ValidationReport:
    records: List[ExpenseRecord] = field(default_factory=list)
    rejections: List[RowRejection] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records) + len(self.rejections)

    def summary(self, max_reasons: int = 5) -> str:
        text = f"Found {len(self.records)} valid expenses in {self.total} rows."
        if not self.rejections:
            return text
        lines = [r.message for r in self.rejections[:max_reasons]]
        if len(self.rejections) > max_reasons:
            lines.append('...')
        return f"{text}\n{len(self.rejections)} rows had errors:\n" + '\n'.join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'records': [
                dict(r.to_document(), row=r.source_row) for r in self.records
            ],
            'rejections': [r.to_dict() for r in self.rejections],
            'valid_count': len(self.records),
            'rejected_count': len(self.rejections),
        }
