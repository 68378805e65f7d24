"""
Expense Import - Receipt Text Parsing

PURPOSE: Pull amount, date and merchant hints out of OCR'd receipt text
SCOPE: Line-by-line regex heuristics; first match per hint wins
DEPENDENCIES: re, datetime, logging

Output is a suggestion for the user to confirm or edit, never an
authoritative value. Each hint carries the line and rule that produced it.
"""

import logging
import re
from datetime import date
from typing import Optional, Tuple

from .config import config
from .models import HintEvidence, ReceiptHints

logger = logging.getLogger(__name__)

AMOUNT_KEYWORDS = (
    'total', 'amount', 'subtotal', 'balance', 'due', 'net', 'sum', 'price',
    'cost', 'charge', 'bill', 'pay', 'sar', 'rs', 'rupees',
)

BUSINESS_SUFFIXES = (
    'MARKET', 'STORE', 'SHOP', 'MART', 'SUPERMARKET', 'RESTAURANT', 'CAFE',
    'PHARMACY', 'MALL', 'CENTER', 'STATION', 'COMPANY', 'INC', 'LLC', 'LTD',
)

AMOUNT_PATTERN = re.compile(
    r'\b(?:' + '|'.join(AMOUNT_KEYWORDS) + r')\b\.?[\s:]*[$€£₹]?\s*(\d[\d,]*(?:\.\s?\d{1,2})?|\.\d{1,2})',
    re.IGNORECASE,
)
DAY_FIRST_DATE_PATTERN = re.compile(r'(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})(?!\d)')
YEAR_FIRST_DATE_PATTERN = re.compile(r'(?<!\d)(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})(?!\d)')
STORE_NAME_PATTERN = re.compile(
    r"^([A-Z\s&'.-]+(?:" + '|'.join(BUSINESS_SUFFIXES) + r"))$"
)
NON_MERCHANT_PATTERN = re.compile(r'total|amount|subtotal|balance|due|net|thank|receipt', re.IGNORECASE)
CURRENCY_SYMBOLS = ('$', '€', '£', '₹')

AMOUNT_RULE = 'keyword_amount'
DATE_RULE = 'date_token'
STORE_RULE = 'store_suffix'
CAPS_RULE = 'caps_fallback'


class ExpenseParser:
    """Base class for receipt parsing with common utilities."""

    @staticmethod
    def parse_receipt_amount(amount_str: str) -> Optional[float]:
        """Parse a receipt amount; commas and stray spaces are thousands noise."""
        cleaned = re.sub(r'[\s,]', '', amount_str or '')
        try:
            return float(cleaned)
        except ValueError:
            logger.warning(f"Could not parse amount: {amount_str}")
            return None

    @staticmethod
    def build_date(year: int, month: int, day: int) -> Optional[str]:
        """Return YYYY-MM-DD when the parts form a real calendar date."""
        if year < 100:
            year += 2000
        if year < 1000:
            return None
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None


class ReceiptTextParser(ExpenseParser):
    """Heuristic parser for generic scanned receipts."""

    def __init__(self, description_scan_lines: Optional[int] = None):
        self.description_scan_lines = (
            description_scan_lines if description_scan_lines is not None
            else config.DESCRIPTION_SCAN_LINES
        )

    def parse(self, raw_text: Optional[str]) -> ReceiptHints:
        """Parse OCR text into hints; missing hints are simply left as None."""
        hints = ReceiptHints()
        if not raw_text:
            logger.info("No text provided for parsing")
            return hints

        for i, raw_line in enumerate(raw_text.splitlines()):
            line = raw_line.strip()
            if not line:
                continue
            line_number = i + 1

            if hints.amount is None:
                amount = self._extract_amount(line)
                if amount is not None:
                    hints.amount = amount
                    hints.evidence['amount'] = HintEvidence(line_number, line, AMOUNT_RULE)
                    logger.info(f"Found amount on line {line_number}: {amount}")

            if hints.date is None:
                found_date = self._extract_date(line)
                if found_date is not None:
                    hints.date = found_date
                    hints.evidence['date'] = HintEvidence(line_number, line, DATE_RULE)
                    logger.info(f"Found date on line {line_number}: {found_date}")

            if hints.description is None and i < self.description_scan_lines:
                found = self._extract_description(line)
                if found is not None:
                    hints.description, rule = found
                    hints.evidence['description'] = HintEvidence(line_number, line, rule)
                    logger.info(f"Found merchant on line {line_number}: '{line}' ({rule})")

        if hints.is_empty:
            logger.warning("Receipt parser found no amount, date or merchant")
        return hints

    def _extract_amount(self, line: str) -> Optional[float]:
        match = AMOUNT_PATTERN.search(line)
        if not match:
            return None
        return self.parse_receipt_amount(match.group(1))

    def _extract_date(self, line: str) -> Optional[str]:
        for match in YEAR_FIRST_DATE_PATTERN.finditer(line):
            year, month, day = (int(part) for part in match.groups())
            found = self.build_date(year, month, day)
            if found:
                return found

        for match in DAY_FIRST_DATE_PATTERN.finditer(line):
            first, second, year = (int(part) for part in match.groups())
            # Day-first, then month-first
            found = self.build_date(year, second, first) or self.build_date(year, first, second)
            if found:
                return found
        return None

    @staticmethod
    def _extract_description(line: str) -> Optional[Tuple[str, str]]:
        store_match = STORE_NAME_PATTERN.match(line)
        if store_match:
            return f"Purchase from {store_match.group(1).strip()}", STORE_RULE

        if (3 < len(line) < 50
                and line == line.upper()
                and any(ch.isalpha() for ch in line)
                and not any(ch.isdigit() for ch in line)
                and not any(symbol in line for symbol in CURRENCY_SYMBOLS)
                and not NON_MERCHANT_PATTERN.search(line)):
            return f"Purchase from {line}", CAPS_RULE
        return None


def parse_receipt_text(raw_text: Optional[str]) -> ReceiptHints:
    """Parse receipt text with the default settings."""
    return ReceiptTextParser().parse(raw_text)
