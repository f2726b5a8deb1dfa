"""Document extraction API endpoints."""

from typing import Any, List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.api.errors import to_http_exception
from app.core.document_extraction import (
    DocumentExtractionService,
    UploadedFile,
    decode_base64_file,
)
from app.core.exceptions import FilingEngineError
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


class ExtractDocumentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., min_length=1, alias="userId")
    document_type: str = Field(..., alias="documentType")
    file_base64: str = Field(..., min_length=1, alias="fileBase64")
    mime_type: str = Field(..., alias="mimeType")


class BatchFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., alias="fileName")
    file_base64: str = Field(..., min_length=1, alias="fileBase64")
    mime_type: str = Field(..., alias="mimeType")


class ExtractDocumentsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., min_length=1, alias="userId")
    document_type: str = Field(..., alias="documentType")
    files: List[BatchFile] = Field(..., min_length=1)


def get_extraction_service() -> DocumentExtractionService:
    """FastAPI dependency for the extraction service."""
    return DocumentExtractionService()


@router.post("/extract-document")
async def extract_document(
    request: ExtractDocumentRequest,
    service: DocumentExtractionService = Depends(get_extraction_service),
) -> JSONResponse:
    """
    Extract structured data from one uploaded document.

    Returns {success, documentType, data}. When the model reply cannot be
    parsed, responds 502 with {error, rawResponse}.
    """
    logger.info(f"Processing {request.document_type} for user {request.user_id}")

    try:
        file_bytes = decode_base64_file(request.file_base64)
        outcome = await service.extract(request.document_type, file_bytes, request.mime_type)
    except FilingEngineError as e:
        raise to_http_exception(e) from e

    if not outcome.success:
        body: dict[str, Any] = {"error": outcome.error or "Failed to parse extracted data"}
        if outcome.raw_response is not None:
            body["rawResponse"] = outcome.raw_response
        return JSONResponse(status_code=502, content=body)

    return JSONResponse(
        content={
            "success": True,
            "documentType": outcome.document_type.value,
            "data": outcome.data,
        }
    )


@router.post("/extract-documents")
async def extract_documents(
    request: ExtractDocumentsRequest,
    service: DocumentExtractionService = Depends(get_extraction_service),
) -> JSONResponse:
    """
    Extract several documents of one type and merge the results.

    Each file gets its own status; one bad file never blocks the rest.
    """
    uploads: list[UploadedFile] = []
    rejected: list[dict[str, Any]] = []
    for f in request.files:
        try:
            content = decode_base64_file(f.file_base64)
        except FilingEngineError as e:
            rejected.append({"fileName": f.file_name, "success": False, "error": f"{e.code}: {e}"})
            continue
        uploads.append(UploadedFile(file_name=f.file_name, content=content, mime_type=f.mime_type))

    try:
        batch = await service.extract_batch(request.document_type, uploads)
    except FilingEngineError as e:
        raise to_http_exception(e) from e

    files = rejected + [
        {
            "fileName": o.file_name,
            "success": o.success,
            "data": o.data,
            "error": o.error,
            "rawResponse": o.raw_response,
        }
        for o in batch.files
    ]
    return JSONResponse(
        content={
            "documentType": batch.document_type.value,
            "files": files,
            "merged": batch.merged,
        }
    )
