"""Persistence gateway HTTP endpoint (db-proxy)."""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.api.errors import status_for, status_for_code
from app.core.exceptions import PayloadValidationError, UnknownOperation
from app.core.logging import get_logger
from app.db.gateway import (
    OPERATIONS,
    GatewayResult,
    PersistenceGateway,
    get_gateway,
    resolve_operation,
)

logger = get_logger(__name__)

router = APIRouter()


class DbProxyRequest(BaseModel):
    """One gateway operation on behalf of a user."""

    model_config = ConfigDict(populate_by_name=True)

    operation: str
    table: str
    user_id: str = Field(..., alias="userId")
    data: Dict[str, Any] | None = None
    id: str | None = None


def _envelope(result: GatewayResult, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post("/db-proxy")
async def db_proxy(
    request: DbProxyRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
) -> JSONResponse:
    """
    Execute a named gateway operation.

    The table must be the one the operation is bound to. Always responds with
    a {data, error} envelope; the status code reflects the error kind.
    """
    try:
        operation = resolve_operation(request.operation)
    except UnknownOperation as e:
        return _envelope(GatewayResult.failure(e), status_for(e))

    expected_table = OPERATIONS[operation].table
    if request.table != expected_table:
        error = PayloadValidationError(
            f"Operation {operation.value} does not apply to table {request.table}",
            field="table",
        )
        return _envelope(GatewayResult.failure(error), status_for(error))

    result = await gateway.aexecute(operation, request.user_id, request.data, request.id)
    if result.ok:
        return _envelope(result)

    logger.info(f"db-proxy {operation.value} failed for user {request.user_id}: {result.error.code}")
    return _envelope(result, status_for_code(result.error.code))

