"""Tests for the OCR HTTP client against a mocked transport."""

import asyncio

import httpx
import pytest

from expense_import.config import OCRConfig
from expense_import.errors import OCRServiceError
from expense_import.ocr_processor import ReceiptOCRClient

ENDPOINT = 'https://ocr.test/parse/image'


def make_client(handler, api_key='test-key'):
    return ReceiptOCRClient(
        OCRConfig(api_key=api_key, endpoint=ENDPOINT),
        transport=httpx.MockTransport(handler),
    )


def ok_response(text='WALMART\nTOTAL: $23.45'):
    return httpx.Response(200, json={
        'IsErroredOnProcessing': False,
        'ParsedResults': [{'ParsedText': text}],
    })


def test_returns_parsed_text_and_sends_form_fields():
    seen = {}

    async def handler(request):
        seen['url'] = str(request.url)
        seen['method'] = request.method
        seen['body'] = await request.aread()
        seen['content_type'] = request.headers['content-type']
        return ok_response()

    text = asyncio.run(make_client(handler).extract_text('aGVsbG8='))

    assert text == 'WALMART\nTOTAL: $23.45'
    assert seen['method'] == 'POST'
    assert seen['url'] == ENDPOINT
    assert seen['content_type'].startswith('multipart/form-data')
    body = seen['body']
    for name, value in [
        (b'apikey', b'test-key'),
        (b'language', b'eng'),
        (b'isOverlayRequired', b'false'),
        (b'OCREngine', b'2'),
        (b'scale', b'true'),
        (b'isTable', b'true'),
        (b'base64Image', b'data:image/jpeg;base64,aGVsbG8='),
    ]:
        assert b'name="' + name + b'"' in body
        assert value in body


def test_existing_data_url_is_not_prefixed_twice():
    client = make_client(lambda request: ok_response())
    form = client.build_form('data:image/png;base64,AAAA')

    assert form['base64Image'] == (None, b'data:image/png;base64,AAAA')


def test_missing_api_key_fails_before_any_request():
    calls = []

    def handler(request):
        calls.append(request)
        return ok_response()

    with pytest.raises(OCRServiceError) as excinfo:
        asyncio.run(make_client(handler, api_key=None).extract_text('aGVsbG8='))

    assert excinfo.value.kind == OCRServiceError.MISSING_CREDENTIAL
    assert calls == []


def test_http_error_status_is_network_failure():
    client = make_client(lambda request: httpx.Response(500, text='boom'))

    with pytest.raises(OCRServiceError) as excinfo:
        asyncio.run(client.extract_text('aGVsbG8='))

    assert excinfo.value.kind == OCRServiceError.NETWORK
    assert str(excinfo.value) == 'HTTP error! status: 500'


def test_connection_error_is_network_failure():
    def handler(request):
        raise httpx.ConnectError('connection refused', request=request)

    with pytest.raises(OCRServiceError) as excinfo:
        asyncio.run(make_client(handler).extract_text('aGVsbG8='))
    assert excinfo.value.kind == OCRServiceError.NETWORK


@pytest.mark.parametrize('error_message,expected', [
    (['E301: Unable to recognize the file type'], 'E301: Unable to recognize the file type'),
    ('Timed out waiting for results', 'Timed out waiting for results'),
    (None, 'OCR processing failed'),
])
def test_service_reported_error_is_processing_failure(error_message, expected):
    client = make_client(lambda request: httpx.Response(200, json={
        'IsErroredOnProcessing': True,
        'ErrorMessage': error_message,
    }))

    with pytest.raises(OCRServiceError) as excinfo:
        asyncio.run(client.extract_text('aGVsbG8='))

    assert excinfo.value.kind == OCRServiceError.PROCESSING
    assert str(excinfo.value) == expected


def test_non_json_body_is_processing_failure():
    client = make_client(lambda request: httpx.Response(200, text='<html>busy</html>'))

    with pytest.raises(OCRServiceError) as excinfo:
        asyncio.run(client.extract_text('aGVsbG8='))
    assert excinfo.value.kind == OCRServiceError.PROCESSING


@pytest.mark.parametrize('payload', [
    {'IsErroredOnProcessing': False, 'ParsedResults': []},
    {'IsErroredOnProcessing': False},
])
def test_empty_results_is_no_results_failure(payload):
    client = make_client(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(OCRServiceError) as excinfo:
        asyncio.run(client.extract_text('aGVsbG8='))
    assert excinfo.value.kind == OCRServiceError.NO_RESULTS


def test_config_from_env(monkeypatch):
    monkeypatch.setenv('OCR_API_KEY', 'env-key')
    monkeypatch.delenv('OCR_API_ENDPOINT', raising=False)

    ocr_config = OCRConfig.from_env()

    assert ocr_config.api_key == 'env-key'
    assert ocr_config.endpoint == 'https://api.ocr.space/parse/image'


@pytest.mark.parametrize('payload', [
    {'IsErroredOnProcessing': False, 'ParsedResults': {'ParsedText': 'x'}},
    {'IsErroredOnProcessing': False, 'ParsedResults': ['garbage']},
    {'IsErroredOnProcessing': False, 'ParsedResults': [{'ParsedText': ['x']}]},
])
def test_malformed_results_are_processing_failures(payload):
    client = make_client(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(OCRServiceError) as excinfo:
        asyncio.run(client.extract_text('aGVsbG8='))
    assert excinfo.value.kind == OCRServiceError.PROCESSING


def test_timeout_is_network_failure():
    def handler(request):
        raise httpx.ReadTimeout('timed out', request=request)

    with pytest.raises(OCRServiceError) as excinfo:
        asyncio.run(make_client(handler).extract_text('aGVsbG8='))
    assert excinfo.value.kind == OCRServiceError.NETWORK


def test_request_uses_configured_timeout():
    assert OCRConfig().timeout == 30.0
    seen = {}

    def handler(request):
        seen['timeout'] = request.extensions['timeout']
        return ok_response()

    client = ReceiptOCRClient(OCRConfig(api_key='test-key', endpoint=ENDPOINT, timeout=12.5),
                              transport=httpx.MockTransport(handler))
    asyncio.run(client.extract_text('aGVsbG8='))

    assert seen['timeout']['read'] == 12.5
    assert seen['timeout']['connect'] == 12.5
