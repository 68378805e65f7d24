"""End-to-end tests for the import and receipt services."""

import asyncio

import httpx
import pytest

from expense_import.bulk_import import BulkImportCoordinator
from expense_import.config import OCRConfig
from expense_import.errors import (
    ImportFailedError, MappingError, OCRServiceError, ParseError, PersistenceError,
)
from expense_import.models import FieldKey, RejectionReason
from expense_import.ocr_processor import ReceiptOCRClient
from expense_import.services import ExpenseImportService, ReceiptScanService


async def no_sleep(seconds):
    return None


def make_import_service():
    return ExpenseImportService(coordinator=BulkImportCoordinator(sleep=no_sleep))


BANK_EXPORT = (
    "Transaction Date,Details,Total Cost,Type,Memo\n"
    "01/03/2024,Groceries run,45.10,Food,\n"
    "02/03/2024,Train to Porto,bad,Travel,\n"
    "03/03/2024,,9.99,Food,\n"
    "04/03/2024,Power bill,120,utility bills,paid late\n"
)


def test_preview_detects_kind_and_mapping():
    preview = make_import_service().preview(BANK_EXPORT.encode(), filename='bank.csv')

    assert preview.file_kind == 'csv'
    assert preview.row_count == 4
    assert preview.headers == ['transaction date', 'details', 'total cost', 'type', 'memo']
    assert preview.mapping['total cost'].field is FieldKey.AMOUNT
    assert preview.mapping['details'].field is FieldKey.DESCRIPTION
    assert not preview.needs_manual_mapping
    assert preview.to_dict()['sample'][0]['details'] == 'Groceries run'


def test_preview_reads_excel(make_xlsx):
    data = make_xlsx([('Amount', 'Description'), (3.5, 'Tea')])
    preview = make_import_service().preview(data, filename='march.xlsx')

    assert preview.file_kind == 'xlsx'
    assert preview.rows[0].to_dict() == {'amount': '3.5', 'description': 'Tea'}


def test_preview_needs_a_kind_or_name():
    with pytest.raises(ParseError) as excinfo:
        make_import_service().preview(BANK_EXPORT)
    assert excinfo.value.kind == ParseError.UNSUPPORTED


def test_validate_and_import_folds_rejections(categories):
    service = make_import_service()
    preview = service.preview(BANK_EXPORT, file_kind='csv')
    report = service.validate(preview, preview.mapping, categories)

    assert [r.source_row for r in report.records] == [1, 4]
    assert report.records[1].category_id == 'cat-bills'
    assert report.records[1].notes == 'paid late'
    assert [r.reason for r in report.rejections] == [
        RejectionReason.INVALID_AMOUNT, RejectionReason.MISSING_DESCRIPTION,
    ]

    saved = []
    outcome = asyncio.run(service.run_import(report, saved.append))

    assert len(saved) == 2
    assert (outcome.success_count, outcome.failed_count) == (2, 2)
    assert outcome.summary() == (
        "Imported 2 of 4 expenses.\n"
        "2 rows had errors:\n"
        'Row 2: Invalid amount "bad"\n'
        "Row 3: Description is required"
    )


def test_import_summary_is_capped():
    service = make_import_service()
    rows = "amount,description\n" + "x,bad\n" * 7
    preview = service.preview(rows, file_kind='csv')
    report = service.validate(preview, preview.mapping)

    outcome = asyncio.run(service.run_import(report, lambda record: None))
    lines = outcome.summary(max_reasons=5).splitlines()

    assert lines[0] == "Imported 0 of 7 expenses."
    assert lines[-1] == '...'
    assert len(lines) == 2 + 5 + 1


def test_strict_import_raises_when_anything_failed():
    service = make_import_service()
    preview = service.preview("amount,description\n5,ok\n0,free\n", file_kind='csv')
    report = service.validate(preview, preview.mapping)

    with pytest.raises(ImportFailedError) as excinfo:
        asyncio.run(service.run_import(report, lambda record: None, strict=True))
    assert excinfo.value.outcome.success_count == 1


def test_persistence_failures_are_reported_by_row():
    service = make_import_service()
    preview = service.preview("amount,description\n5,ok\n6,dup\n", file_kind='csv')
    report = service.validate(preview, preview.mapping)

    def persist(record):
        if record.description == 'dup':
            raise PersistenceError('Document already exists')

    outcome = asyncio.run(service.run_import(report, persist))
    assert [(e.row_index, e.reason) for e in outcome.errors] == [(2, 'Document already exists')]


def test_validate_requires_manual_mapping_when_fields_missing():
    service = make_import_service()
    preview = service.preview("cost,foo\n5,bar\n", file_kind='csv')
    assert preview.needs_manual_mapping

    with pytest.raises(MappingError):
        service.validate(preview, preview.mapping)

    preview.mapping.assign('foo', 'description')
    report = service.validate(preview, preview.mapping)
    assert report.records[0].description == 'bar'


# ============================================================================
# RECEIPT SCANNING
# ============================================================================

def make_scan_service(handler, api_key='test-key'):
    client = ReceiptOCRClient(OCRConfig(api_key=api_key, endpoint='https://ocr.test/parse'),
                              transport=httpx.MockTransport(handler))
    return ReceiptScanService(client)


def test_scan_returns_hints():
    service = make_scan_service(lambda request: httpx.Response(200, json={
        'IsErroredOnProcessing': False,
        'ParsedResults': [{'ParsedText': "WALMART\nTOTAL: $23.45\n03/15/2024"}],
    }))

    hints = asyncio.run(service.scan('aGVsbG8='))

    assert (hints.amount, hints.date, hints.description) == (23.45, '2024-03-15', 'Purchase from WALMART')
    assert hints.error is None


def test_scan_degrades_to_empty_hints_on_service_failure():
    service = make_scan_service(lambda request: httpx.Response(503))

    hints = asyncio.run(service.scan('aGVsbG8='))

    assert hints.is_empty
    assert hints.error == 'HTTP error! status: 503'


@pytest.mark.parametrize('results', [{'ParsedText': 'x'}, ['garbage']])
def test_scan_degrades_on_malformed_service_response(results):
    service = make_scan_service(lambda request: httpx.Response(200, json={
        'IsErroredOnProcessing': False,
        'ParsedResults': results,
    }))

    hints = asyncio.run(service.scan('aGVsbG8='))

    assert hints.is_empty
    assert hints.error == 'OCR service returned an unexpected response'


def test_scan_without_api_key_raises():
    service = make_scan_service(lambda request: httpx.Response(200), api_key='')

    with pytest.raises(OCRServiceError) as excinfo:
        asyncio.run(service.scan('aGVsbG8='))
    assert excinfo.value.kind == OCRServiceError.MISSING_CREDENTIAL


def test_confirmed_hints_become_a_record(categories):
    service = make_scan_service(lambda request: httpx.Response(500))
    hints = service.parser.parse("WALMART\nTOTAL: $23.45\n03/15/2024")

    record, rejection = service.to_record(hints, categories, category_name='food')

    assert rejection is None
    assert record.amount == 23.45
    assert record.category_id == 'cat-food'
    assert record.created_at == '2024-03-15T00:00:00+00:00'


def test_user_edits_override_hints():
    service = make_scan_service(lambda request: httpx.Response(500))
    hints = service.parser.parse("CORNER DELI\nTOTAL 8.00\n01/02/2024")

    record, _ = service.to_record(hints, overrides={'amount': 9.5, 'description': 'Lunch'})

    assert record.amount == 9.5
    assert record.description == 'Lunch'


def test_receipt_without_date_is_rejected():
    service = make_scan_service(lambda request: httpx.Response(500))
    hints = service.parser.parse("CORNER DELI\nTOTAL 8.00")

    record, rejection = service.to_record(hints)

    assert record is None
    assert rejection.reason is RejectionReason.MISSING_DATE
