"""
Expense Import - Column Mapping

PURPOSE: Work out which source column holds which expense field
SCOPE: Keyword scoring, confidence reporting, manual-mapping decision gate
DEPENDENCIES: config (keyword variations)
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .config import config
from .models import (
    CONTAINS_MATCH, EXACT_MATCH, NO_MATCH, PARTIAL_MATCH,
    ColumnMapping, ColumnMatch, FieldKey,
)

logger = logging.getLogger(__name__)


def score_header(header: str, keyword: str) -> int:
    """Score how well a normalized header matches one keyword."""
    if not header or not keyword:
        return NO_MATCH
    if header == keyword:
        return EXACT_MATCH
    if keyword in header:
        return CONTAINS_MATCH
    if header in keyword:
        return PARTIAL_MATCH
    return NO_MATCH


class ColumnMapper:
    """Infers a ColumnMapping from file headers using keyword variations."""

    def __init__(self, variations: Optional[Dict[str, List[str]]] = None):
        table = variations if variations is not None else config.COLUMN_VARIATIONS
        # Dict order is the tie-break order between fields.
        self.variations: List[Tuple[FieldKey, List[str]]] = [
            (FieldKey(name), [kw.strip().lower() for kw in keywords])
            for name, keywords in table.items()
        ]

    def best_match(self, header: str) -> ColumnMatch:
        """Best field for one header; the earlier field keeps a tied score."""
        normalized = header.strip().lower()
        best = ColumnMatch(FieldKey.IGNORE, NO_MATCH)
        for field_key, keywords in self.variations:
            score = max((score_header(normalized, kw) for kw in keywords), default=NO_MATCH)
            if score > best.confidence:
                best = ColumnMatch(field_key, score)
        return best

    def infer_mapping(self, headers: Sequence[str]) -> ColumnMapping:
        # Keys match RawRow cells and ColumnMapping.assign: trimmed, lower-case.
        mapping = ColumnMapping({
            header.strip().lower(): self.best_match(header) for header in headers
        })

        if mapping.required_fields_confident:
            logger.info(f"Auto-detected column mapping: {mapping.to_dict()}")
        else:
            missing = mapping.missing_required_fields()
            if missing:
                logger.warning(f"Column mapping is missing required fields: {', '.join(missing)}")
            else:
                logger.warning("Column mapping has low-confidence required fields; manual mapping needed")
        return mapping


def infer_mapping(headers: Sequence[str]) -> ColumnMapping:
    """Infer a mapping with the default keyword table."""
    return ColumnMapper().infer_mapping(headers)
