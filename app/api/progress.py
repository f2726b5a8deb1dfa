"""Application progress endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.api.errors import to_http_exception
from app.core.exceptions import FilingEngineError
from app.core.logging import get_logger
from app.core.progress import ProgressTracker
from app.core.schemas_filing import ProgressSummary, StepName, StepProgress, StepStatus
from app.db.conversations import ConversationStore
from app.db.gateway import PersistenceGateway, get_gateway

logger = get_logger(__name__)

router = APIRouter()


class StepStatusUpdate(BaseModel):
    status: StepStatus


@router.get("/progress/{user_id}", response_model=ProgressSummary)
async def get_progress(
    user_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
) -> ProgressSummary:
    """Step statuses and percentage for the progress bar."""
    try:
        return await ProgressTracker(gateway).summary(user_id)
    except FilingEngineError as e:
        raise to_http_exception(e) from e


@router.put("/progress/{user_id}/{step_name}", response_model=StepProgress)
async def set_step_status(
    user_id: str,
    step_name: str,
    request: StepStatusUpdate,
    gateway: PersistenceGateway = Depends(get_gateway),
) -> StepProgress:
    """Set one step's status from the UI; other steps are untouched."""
    try:
        step = StepName(step_name)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown step: {step_name}") from None

    try:
        return await ProgressTracker(gateway).set_status(user_id, step, request.status)
    except FilingEngineError as e:
        raise to_http_exception(e) from e


@router.post("/progress/{user_id}/restart")
async def restart_application(
    user_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
) -> dict:
    """
    Start the conversation over.

    Clears the chat log and every step status. Collected personal, service,
    VA and claim data is kept.
    """
    try:
        await ConversationStore(gateway).clear(user_id)
        await ProgressTracker(gateway).reset(user_id)
    except FilingEngineError as e:
        raise to_http_exception(e) from e

    logger.info(f"Restarted application for user {user_id}")
    return {"success": True}
