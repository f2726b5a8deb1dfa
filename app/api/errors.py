"""Mapping from engine errors to HTTP responses."""

from fastapi import HTTPException

from app.core.exceptions import FilingEngineError, StoreConnectionError, UpstreamTimeout

GENERIC_ERROR_DETAIL = "Internal server error"

# Keyed by FilingEngineError.code; anything unlisted is a 500
STATUS_BY_CODE: dict[str, int] = {
    "UnknownOperation": 400,
    "ValidationError": 400,
    "UnsupportedMediaType": 400,
    "InvalidDocumentType": 400,
    "ConstraintError": 409,
    "ConnectionError": 503,
    "UpstreamTimeout": 504,
}


def status_for_code(code: str | None) -> int:
    return STATUS_BY_CODE.get(code or "", 500)


def status_for(exc: Exception) -> int:
    """HTTP status code for an engine error."""
    return status_for_code(getattr(exc, "code", None))


def to_http_exception(exc: Exception) -> HTTPException:
    """Client errors keep their message; everything else gets a generic detail."""
    status_code = status_for(exc)
    if status_code < 500 and isinstance(exc, FilingEngineError):
        return HTTPException(status_code=status_code, detail=f"{exc.code}: {exc}")
    if isinstance(exc, UpstreamTimeout):
        return HTTPException(status_code=status_code, detail=f"Upstream timeout: {exc.target}")
    if isinstance(exc, StoreConnectionError):
        return HTTPException(status_code=status_code, detail="Data store unavailable")
    return HTTPException(status_code=status_code, detail=GENERIC_ERROR_DETAIL)
