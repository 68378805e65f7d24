"""
Expense Import - OCR Processing

PURPOSE: Send receipt images to a remote text-extraction service
SCOPE: One multipart request per image, response checking, error classification
DEPENDENCIES: httpx

The client performs no interpretation of the returned text; see parsers.py.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .config import OCRConfig
from .errors import OCRServiceError

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = 'data:image/jpeg;base64,'


class ReceiptOCRClient:
    """Thin async client for an OCR.space-compatible parse endpoint."""

    def __init__(self, ocr_config: OCRConfig,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = ocr_config
        self._transport = transport

    def build_form(self, image_base64: str) -> Dict[str, Any]:
        """Multipart fields for one request; values have no filename."""
        image = image_base64 if image_base64.startswith('data:') else DATA_URL_PREFIX + image_base64
        fields = {
            'apikey': self.config.api_key or '',
            'language': self.config.language,
            'isOverlayRequired': 'false',
            'OCREngine': str(self.config.engine),
            'scale': 'true',
            'isTable': 'true',
            'base64Image': image,
        }
        return {name: (None, value.encode('utf-8')) for name, value in fields.items()}

    async def extract_text(self, image_base64: str) -> str:
        """Return the raw text the service read from a base64-encoded image."""
        if not self.config.api_key:
            logger.error("OCR API key is missing")
            raise OCRServiceError(
                "OCR API key is missing. Set it on the OCR configuration.",
                kind=OCRServiceError.MISSING_CREDENTIAL,
            )

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout,
                                         transport=self._transport) as client:
                response = await client.post(self.config.endpoint,
                                             files=self.build_form(image_base64))
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"OCR request failed with status {e.response.status_code}")
            raise OCRServiceError(
                f"HTTP error! status: {e.response.status_code}", kind=OCRServiceError.NETWORK
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"OCR request error: {e!r}")
            raise OCRServiceError(
                f"Could not reach OCR service: {e}", kind=OCRServiceError.NETWORK
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error("OCR service returned a non-JSON body")
            raise OCRServiceError(
                "OCR service returned an unreadable response", kind=OCRServiceError.PROCESSING
            ) from e
        if not isinstance(data, dict):
            raise OCRServiceError(
                "OCR service returned an unexpected response", kind=OCRServiceError.PROCESSING
            )

        if data.get('IsErroredOnProcessing'):
            message = self._error_message(data.get('ErrorMessage'))
            logger.error(f"OCR API returned error: {message}")
            raise OCRServiceError(message, kind=OCRServiceError.PROCESSING)

        results = data.get('ParsedResults') or []
        if not isinstance(results, list):
            logger.error(f"Unexpected ParsedResults type: {type(results).__name__}")
            raise OCRServiceError(
                "OCR service returned an unexpected response", kind=OCRServiceError.PROCESSING
            )
        if not results:
            logger.error("No parsed results in OCR response")
            raise OCRServiceError(
                "No text could be extracted from the image", kind=OCRServiceError.NO_RESULTS
            )

        first = results[0]
        text = (first.get('ParsedText') or '') if isinstance(first, dict) else None
        if not isinstance(text, str):
            logger.error("Parsed result has no readable text")
            raise OCRServiceError(
                "OCR service returned an unexpected response", kind=OCRServiceError.PROCESSING
            )
        logger.info(f"OCR extracted {len(text.splitlines())} lines of text")
        return text

    @staticmethod
    def _error_message(error: Any) -> str:
        if isinstance(error, list):
            error = error[0] if error else None
        return str(error) if error else 'OCR processing failed'
