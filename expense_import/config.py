"""
Expense Import - Configuration and Constants

PURPOSE: Central configuration for the import and receipt pipelines
SCOPE: Batch/throttle settings, column keyword tables, OCR endpoint settings
DEPENDENCIES: None (foundational module)
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional


DEFAULT_OCR_ENDPOINT = 'https://api.ocr.space/parse/image'


@dataclass
class ImportConfig:
    """Import pipeline constants."""
    BATCH_SIZE: int = 10
    BATCH_DELAY_SECONDS: float = 1.0
    RATE_LIMIT_BACKOFF_SECONDS: float = 3.0
    RETRY_ITEM_DELAY_SECONDS: float = 0.5
    MAX_ERROR_REASONS: int = 5
    DESCRIPTION_SCAN_LINES: int = 5
    DATE_PARSING_MODE: str = 'lenient'
    COLUMN_VARIATIONS: Dict[str, List[str]] = None

    def __post_init__(self):
        if self.COLUMN_VARIATIONS is None:
            # Scan order matters: on equal scores the earlier field wins.
            self.COLUMN_VARIATIONS = {
                'amount': ['amount', 'cost', 'price', 'total', 'value', 'expense'],
                'description': ['description', 'details', 'item', 'expense', 'note', 'title'],
                'category': ['category', 'type', 'group', 'classification'],
                'date': ['date', 'transaction date', 'created', 'when', 'timestamp'],
                'notes': ['notes', 'memo', 'comment', 'remarks'],
            }
        if self.BATCH_SIZE < 1:
            raise ValueError("BATCH_SIZE must be a positive integer")


@dataclass
class OCRConfig:
    """Settings for the remote text-extraction endpoint."""
    api_key: Optional[str] = None
    endpoint: str = DEFAULT_OCR_ENDPOINT
    timeout: float = 30.0
    language: str = 'eng'
    engine: int = 2

    @classmethod
    def from_env(cls) -> 'OCRConfig':
        """Build a config from OCR_API_KEY / OCR_API_ENDPOINT (entrypoints only)."""
        return cls(
            api_key=os.getenv('OCR_API_KEY') or None,
            endpoint=os.getenv('OCR_API_ENDPOINT') or DEFAULT_OCR_ENDPOINT,
        )


# Global configuration instance
config = ImportConfig()

# Set up logging
logging.basicConfig(level=os.getenv('EXPENSE_IMPORT_LOG_LEVEL', 'INFO').upper())
logger = logging.getLogger(__name__)
