"""Document extraction using Claude Vision.

Turns an uploaded VA decision letter, VA code sheet or DD214 (PDF or image)
into structured data. One model call per file, no retry, no persistence.
"""

import asyncio
import base64
from enum import Enum
from typing import Any, Optional

import anthropic
from anthropic import AsyncAnthropic
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.core.config import get_settings
from app.core.exceptions import (
    ExtractionValidationError,
    InvalidDocumentType,
    UnsupportedMediaType,
    UpstreamTimeout,
)
from app.core.llm import extract_first_json_object, get_anthropic_client
from app.core.logging import get_logger

logger = get_logger(__name__)


class DocumentType(str, Enum):
    """Extractable document categories."""
    VA_DECISION_LETTER = "va_decision_letter"
    VA_CODE_SHEET = "va_code_sheet"
    DD214 = "dd214"


PDF_MIME_TYPE = "application/pdf"
IMAGE_MIME_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
SUPPORTED_MIME_TYPES = (PDF_MIME_TYPE, *IMAGE_MIME_TYPES)


_RULES_FOOTER = """Important:
- Use null for any fields you cannot find
- For percentages, use numbers not strings (70 not "70%")
- For dates, use YYYY-MM-DD format
- Return ONLY the JSON object, no other text"""

EXTRACTION_PROMPTS: dict[DocumentType, str] = {
    DocumentType.VA_DECISION_LETTER: f"""You are analyzing a VA (Department of Veterans Affairs) disability rating decision letter.

Extract the following information and return it as a JSON object:

{{
  "disabilities": [
    {{
      "title": "The name/title of the disability as listed",
      "diagnosticCode": "The VA diagnostic code (e.g., 9411, 6260)",
      "percentage": The rating percentage as a number,
      "effectiveDate": "The effective date in YYYY-MM-DD format if shown",
      "bodyPart": "The body part affected if mentioned"
    }}
  ],
  "combinedRating": The combined/overall disability rating as a number,
  "decisionDate": "The date of the decision in YYYY-MM-DD format",
  "vaFileNumber": "The VA file number if shown"
}}

- Extract ALL disabilities listed in the document
{_RULES_FOOTER}""",
    DocumentType.VA_CODE_SHEET: f"""You are analyzing a VA Code Sheet (Rating Code Sheet).

Extract the following information and return it as a JSON object:

{{
  "disabilities": [
    {{
      "diagnosticCode": "The diagnostic code (e.g., 9411)",
      "description": "The description of the condition",
      "percentage": The rating percentage as a number
    }}
  ],
  "combinedRating": The combined rating percentage as a number
}}

- Extract ALL conditions listed
{_RULES_FOOTER}""",
    DocumentType.DD214: f"""You are analyzing a DD214 (Certificate of Release or Discharge from Active Duty).

Extract the following information and return it as a JSON object:

{{
  "branch": "The branch of service (Army, Navy, Air Force, Marine Corps, Coast Guard, Space Force)",
  "entryDate": "Date entered active duty in YYYY-MM-DD format",
  "separationDate": "Date of separation in YYYY-MM-DD format",
  "rank": "Pay grade and rank at separation",
  "yearsOfService": Total years of service as a number,
  "characterOfService": "Character of service (Honorable, General, etc.)"
}}

{_RULES_FOOTER}""",
}


# ============================================================================
# Extracted data models
# ============================================================================


class _ExtractedModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def _coerce_percentage(v: Any) -> Any:
    if isinstance(v, str):
        stripped = v.strip().rstrip("%").strip()
        return stripped or None
    return v


class ExtractedDisability(_ExtractedModel):
    title: Optional[str] = None
    diagnostic_code: Optional[str] = Field(default=None, alias="diagnosticCode")
    description: Optional[str] = None
    percentage: Optional[int] = Field(default=None, ge=0, le=100)
    effective_date: Optional[str] = Field(default=None, alias="effectiveDate")
    body_part: Optional[str] = Field(default=None, alias="bodyPart")

    @field_validator("diagnostic_code", mode="before")
    @classmethod
    def _code_as_text(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("percentage", mode="before")
    @classmethod
    def _percentage(cls, v: Any) -> Any:
        return _coerce_percentage(v)


class DecisionLetterData(_ExtractedModel):
    disabilities: list[ExtractedDisability] = Field(default_factory=list)
    combined_rating: Optional[int] = Field(default=None, ge=0, le=100, alias="combinedRating")
    decision_date: Optional[str] = Field(default=None, alias="decisionDate")
    va_file_number: Optional[str] = Field(default=None, alias="vaFileNumber")

    @field_validator("combined_rating", mode="before")
    @classmethod
    def _percentage(cls, v: Any) -> Any:
        return _coerce_percentage(v)

    @field_validator("disabilities", mode="before")
    @classmethod
    def _null_list(cls, v: Any) -> Any:
        return v or []


class CodeSheetData(_ExtractedModel):
    disabilities: list[ExtractedDisability] = Field(default_factory=list)
    combined_rating: Optional[int] = Field(default=None, ge=0, le=100, alias="combinedRating")

    @field_validator("combined_rating", mode="before")
    @classmethod
    def _percentage(cls, v: Any) -> Any:
        return _coerce_percentage(v)

    @field_validator("disabilities", mode="before")
    @classmethod
    def _null_list(cls, v: Any) -> Any:
        return v or []


class DD214Data(_ExtractedModel):
    branch: Optional[str] = None
    entry_date: Optional[str] = Field(default=None, alias="entryDate")
    separation_date: Optional[str] = Field(default=None, alias="separationDate")
    rank: Optional[str] = None
    years_of_service: Optional[float] = Field(default=None, ge=0, alias="yearsOfService")
    character_of_service: Optional[str] = Field(default=None, alias="characterOfService")


DATA_MODELS: dict[DocumentType, type[_ExtractedModel]] = {
    DocumentType.VA_DECISION_LETTER: DecisionLetterData,
    DocumentType.VA_CODE_SHEET: CodeSheetData,
    DocumentType.DD214: DD214Data,
}


class ExtractionOutcome(BaseModel):
    """Result of extracting one document."""
    success: bool
    document_type: DocumentType
    data: Optional[dict[str, Any]] = None
    raw_response: Optional[str] = None
    error: Optional[str] = None
    file_name: Optional[str] = None


class UploadedFile(BaseModel):
    file_name: str
    content: bytes
    mime_type: str


class BatchExtractionOutcome(BaseModel):
    """Per-file outcomes plus the merge of the successful ones."""
    document_type: DocumentType
    files: list[ExtractionOutcome]
    merged: Optional[dict[str, Any]] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for f in self.files if f.success)


# ============================================================================
# Multi-document merge
# ============================================================================


def _normalise(value: Any) -> str:
    return " ".join(str(value).split()).lower()


def disability_key(item: dict[str, Any]) -> tuple[str, str] | None:
    """Dedup key: diagnostic code, else title, else description."""
    for field_name in ("diagnosticCode", "title", "description"):
        value = item.get(field_name)
        if value is not None and str(value).strip():
            return field_name, _normalise(value)
    return None


def merge_disabilities(*lists: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Union disability lists in order; duplicates coalesce, first seen wins."""
    merged: list[dict[str, Any]] = []
    index: dict[tuple[str, str], dict[str, Any]] = {}

    for items in lists:
        for item in items or []:
            key = disability_key(item)
            if key is None:
                merged.append(dict(item))
                continue
            existing = index.get(key)
            if existing is None:
                existing = dict(item)
                index[key] = existing
                merged.append(existing)
                continue
            for k, v in item.items():
                if existing.get(k) is None and v is not None:
                    existing[k] = v
    return merged


def merge_extractions(results: list[dict[str, Any]]) -> dict[str, Any]:
    """
    Merge extracted data from several documents of one type.

    Disabilities are unioned and deduplicated; every other field takes the
    most recently seen non-null value.
    """
    merged: dict[str, Any] = {}
    disability_lists: list[list[dict[str, Any]]] = []

    for result in results:
        for key, value in result.items():
            if key == "disabilities":
                disability_lists.append(value or [])
            elif value is not None:
                merged[key] = value
            else:
                merged.setdefault(key, None)

    if disability_lists:
        merged["disabilities"] = merge_disabilities(*disability_lists)
    return merged


# ============================================================================
# Service
# ============================================================================


def validate_request(
    document_type: str | DocumentType, file_bytes: bytes, mime_type: str
) -> DocumentType:
    """
    Check an extraction request before any model call.

    Raises:
        InvalidDocumentType: Unknown document category
        UnsupportedMediaType: Not a PDF or supported image
        ExtractionValidationError: Empty or oversized file
    """
    try:
        doc_type = DocumentType(document_type)
    except ValueError:
        raise InvalidDocumentType(
            "Invalid document type. Must be va_decision_letter, va_code_sheet, or dd214"
        ) from None

    if mime_type not in SUPPORTED_MIME_TYPES:
        raise UnsupportedMediaType("Unsupported file type. Must be PDF or image.")

    if not file_bytes:
        raise ExtractionValidationError("File is empty")

    max_bytes = get_settings().MAX_UPLOAD_BYTES
    if len(file_bytes) > max_bytes:
        raise ExtractionValidationError(
            f"File too large: {len(file_bytes)} bytes (limit {max_bytes})"
        )
    return doc_type


def _source_block(file_bytes: bytes, mime_type: str) -> dict[str, Any]:
    data = base64.standard_b64encode(file_bytes).decode("utf-8")
    block_type = "document" if mime_type == PDF_MIME_TYPE else "image"
    return {
        "type": block_type,
        "source": {"type": "base64", "media_type": mime_type, "data": data},
    }


class DocumentExtractionService:
    """Extracts structured data from veteran documents with Claude Vision."""

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._client = client
        self.model = model or settings.EXTRACTION_MODEL
        self.max_tokens = max_tokens or settings.EXTRACTION_MAX_TOKENS
        self.timeout = timeout or settings.UPSTREAM_TIMEOUT_SECONDS

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = get_anthropic_client()
        return self._client

    async def _call_model(self, doc_type: DocumentType, file_bytes: bytes, mime_type: str) -> str:
        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    messages=[
                        {
                            "role": "user",
                            "content": [
                                _source_block(file_bytes, mime_type),
                                {"type": "text", "text": EXTRACTION_PROMPTS[doc_type]},
                            ],
                        }
                    ],
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise UpstreamTimeout("extraction model", self.timeout) from None

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    async def extract(
        self,
        document_type: str | DocumentType,
        file_bytes: bytes,
        mime_type: str,
        file_name: str | None = None,
    ) -> ExtractionOutcome:
        """
        Extract structured data from one document.

        Parse failures come back as success=False with the raw model text;
        they are never raised.

        Raises:
            ExtractionValidationError: Request rejected before the model call
            UpstreamTimeout: Model did not answer within the wait bound
        """
        doc_type = validate_request(document_type, file_bytes, mime_type)
        logger.info(
            f"Extracting {doc_type.value} ({mime_type}, {len(file_bytes)} bytes)"
            + (f" from {file_name}" if file_name else "")
        )

        try:
            raw_text = await self._call_model(doc_type, file_bytes, mime_type)
        except anthropic.APIError as e:
            logger.error(f"Extraction model call failed for {doc_type.value}: {e}")
            return ExtractionOutcome(
                success=False,
                document_type=doc_type,
                error=f"UpstreamError: {e}",
                file_name=file_name,
            )

        if not raw_text.strip():
            return ExtractionOutcome(
                success=False,
                document_type=doc_type,
                error="ParseError: No text response from model",
                raw_response=raw_text,
                file_name=file_name,
            )

        try:
            parsed = extract_first_json_object(raw_text)
            data = DATA_MODELS[doc_type].model_validate(parsed).to_wire()
        except (ValueError, ValidationError) as e:
            # ValueError covers json.JSONDecodeError
            logger.warning(f"Failed to parse {doc_type.value} extraction: {e}")
            return ExtractionOutcome(
                success=False,
                document_type=doc_type,
                error=f"ParseError: {e}",
                raw_response=raw_text,
                file_name=file_name,
            )

        logger.info(f"Successfully extracted data for {doc_type.value}")
        return ExtractionOutcome(
            success=True, document_type=doc_type, data=data, file_name=file_name
        )

    async def extract_batch(
        self, document_type: str | DocumentType, files: list[UploadedFile]
    ) -> BatchExtractionOutcome:
        """Extract several files of one type; one failing file never blocks the rest."""
        try:
            doc_type = DocumentType(document_type)
        except ValueError:
            raise InvalidDocumentType(
                "Invalid document type. Must be va_decision_letter, va_code_sheet, or dd214"
            ) from None

        outcomes: list[ExtractionOutcome] = []
        for upload in files:
            try:
                outcome = await self.extract(
                    doc_type, upload.content, upload.mime_type, file_name=upload.file_name
                )
            except (ExtractionValidationError, UpstreamTimeout) as e:
                outcome = ExtractionOutcome(
                    success=False,
                    document_type=doc_type,
                    error=f"{e.code}: {e}",
                    file_name=upload.file_name,
                )
            outcomes.append(outcome)

        successful = [o.data for o in outcomes if o.success and o.data is not None]
        merged = merge_extractions(successful) if successful else None

        logger.info(
            f"Batch extraction for {doc_type.value}: "
            f"{len(successful)}/{len(files)} files succeeded"
        )
        return BatchExtractionOutcome(document_type=doc_type, files=outcomes, merged=merged)


def decode_base64_file(file_base64: str) -> bytes:
    """Decode an uploaded base64 payload, tolerating a data: URL prefix."""
    payload = file_base64.split(",", 1)[1] if file_base64.startswith("data:") else file_base64
    try:
        return base64.b64decode(payload, validate=True)
    except ValueError as e:
        raise ExtractionValidationError(f"fileBase64 is not valid base64: {e}") from e

