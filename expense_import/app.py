"""
Expense Import - FastAPI Application

PURPOSE: HTTP endpoints a UI layer calls to preview, validate and scan
SCOPE: Request/response handling only; nothing is persisted here
DEPENDENCIES: FastAPI, services
"""

import base64
import json
import logging
from functools import lru_cache
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile

from .config import OCRConfig, config
from .errors import MappingError, OCRServiceError, ParseError
from .models import Category, ImportPreview
from .ocr_processor import ReceiptOCRClient
from .services import ExpenseImportService, ReceiptScanService

logger = logging.getLogger(__name__)

app = FastAPI(title="Expense Import")

import_service = ExpenseImportService()


@lru_cache(maxsize=1)
def get_receipt_service() -> ReceiptScanService:
    """Receipt service built from the process environment."""
    return ReceiptScanService(ReceiptOCRClient(OCRConfig.from_env()))


def _parse_json_form(raw: str, expected: type, name: str) -> Any:
    try:
        value = json.loads(raw or 'null')
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail=f"'{name}' must be valid JSON")
    if value is None:
        return expected()
    if not isinstance(value, expected):
        raise HTTPException(status_code=400, detail=f"'{name}' must be a JSON {expected.__name__}")
    return value


async def _load_preview(file: UploadFile) -> ImportPreview:
    content = await file.read()
    try:
        return import_service.preview(content, filename=file.filename)
    except ParseError as e:
        logger.warning(f"Could not parse {file.filename}: {e}")
        raise HTTPException(status_code=400, detail={"kind": e.kind, "message": str(e)})


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ============================================================================
# TABULAR IMPORT ENDPOINTS
# ============================================================================

@app.post("/imports/preview")
async def preview_import(file: UploadFile = File(...)):
    """Parse an uploaded CSV/Excel file and propose a column mapping."""
    preview = await _load_preview(file)
    return preview.to_dict()


@app.post("/imports/validate")
async def validate_import(
    file: UploadFile = File(...),
    mapping: str = Form('{}'),
    categories: str = Form('[]'),
    date_mode: str = Form(config.DATE_PARSING_MODE)
):
    """Validate every row using the proposed mapping plus any user overrides."""
    overrides: Dict[str, str] = _parse_json_form(mapping, dict, 'mapping')
    category_docs: List[Dict[str, Any]] = _parse_json_form(categories, list, 'categories')

    try:
        category_list = [Category.from_document(doc) for doc in category_docs]
    except (KeyError, TypeError):
        raise HTTPException(status_code=400, detail="Each category needs '$id' and 'category_name'")

    preview = await _load_preview(file)
    column_mapping = preview.mapping
    try:
        for header, field_name in overrides.items():
            column_mapping.assign(header, field_name)
        report = import_service.validate(preview, column_mapping, category_list, date_mode)
    except MappingError as e:
        raise HTTPException(
            status_code=422, detail={"message": str(e), "missing_fields": e.missing}
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = report.to_dict()
    result["mapping"] = column_mapping.to_dict()
    result["summary"] = report.summary(config.MAX_ERROR_REASONS)
    return result


# ============================================================================
# RECEIPT ENDPOINTS
# ============================================================================

@app.post("/receipts/scan")
async def scan_receipt(
    file: UploadFile = File(...),
    service: ReceiptScanService = Depends(get_receipt_service)
):
    """Scan a receipt image and return editable pre-fill hints."""
    if file.content_type and not file.content_type.startswith('image/'):
        raise HTTPException(status_code=400, detail="Upload must be an image")

    image_bytes = await file.read()
    image_base64 = base64.b64encode(image_bytes).decode('ascii')
    try:
        hints = await service.scan(image_base64)
    except OCRServiceError as e:
        logger.error(f"Receipt scanning unavailable: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    return hints.to_dict()


# ============================================================================
# APPLICATION ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
