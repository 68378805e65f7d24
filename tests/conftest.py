"""Shared fixtures for the expense import test suite."""

import io
from datetime import datetime, timezone

import pytest
from openpyxl import Workbook

from expense_import.models import Category


@pytest.fixture
def categories():
    return [
        Category(id='cat-food', name='Food'),
        Category(id='cat-travel', name='Travel'),
        Category(id='cat-bills', name='Utility Bills'),
    ]


@pytest.fixture
def fixed_clock():
    moment = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    return lambda: moment


@pytest.fixture
def make_xlsx():
    """Build an in-memory workbook; every sheet is a list of row tuples."""

    def _build(*sheets):
        workbook = Workbook()
        first = workbook.active
        for position, rows in enumerate(sheets):
            sheet = first if position == 0 else workbook.create_sheet(f"Sheet{position + 1}")
            for row in rows:
                sheet.append(list(row))
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    return _build
