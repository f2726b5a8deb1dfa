"""Tool dispatch: routes a model tool call to the gateway or progress tracker."""

import logging
from datetime import date
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.core.exceptions import FilingEngineError
from app.core.logging import get_logger, log_with_context
from app.core.progress import ProgressTracker
from app.core.schemas_filing import (
    CHAT_STEPS,
    Branch,
    CombatRelatedCode,
    RetirementType,
    StepName,
    StepStatus,
)
from app.db.gateway import Operation, PersistenceGateway

logger = get_logger(__name__)


class ToolName(str, Enum):
    """Closed set of tools the model may call."""
    SAVE_PERSONAL_INFO = "save_personal_info"
    SAVE_MILITARY_SERVICE = "save_military_service"
    SAVE_VA_DISABILITY_INFO = "save_va_disability_info"
    SAVE_DISABILITY_CLAIM = "save_disability_claim"
    UPDATE_PHASE_STATUS = "update_phase_status"


# ============================================================================
# Argument models; mirror the input_schema of each tool definition
# ============================================================================


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class SavePersonalInfoArgs(_ToolArgs):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    middle_initial: Optional[str] = None
    ssn: Optional[str] = None
    date_of_birth: Optional[date] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if "ssn" in payload:
            payload["ssn_encrypted"] = payload.pop("ssn")
        return payload


class SaveMilitaryServiceArgs(_ToolArgs):
    branch: Branch
    retirement_type: RetirementType
    service_number: Optional[str] = None
    retired_rank: Optional[str] = None
    retirement_date: Optional[date] = None
    years_of_service: Optional[float] = None


class SaveVADisabilityArgs(_ToolArgs):
    current_va_rating: int = Field(..., ge=0, le=100)
    va_file_number: Optional[str] = None
    va_decision_date: Optional[date] = None
    has_va_waiver: Optional[bool] = None
    receives_crdp: Optional[bool] = None


class SaveDisabilityClaimArgs(_ToolArgs):
    disability_title: str = Field(..., min_length=1)
    current_rating_percentage: int = Field(..., ge=0, le=100)
    combat_related_code: CombatRelatedCode
    disability_code: Optional[str] = None
    body_part_affected: Optional[str] = None
    date_awarded_by_va: Optional[date] = None
    initial_rating_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    unit_of_assignment: Optional[str] = None
    location_of_injury: Optional[str] = None
    description_of_event: Optional[str] = None
    received_purple_heart: Optional[bool] = None


class UpdatePhaseStatusArgs(_ToolArgs):
    step_name: StepName
    status: StepStatus

    @field_validator("step_name")
    @classmethod
    def _chat_step_only(cls, v: StepName) -> StepName:
        if v not in CHAT_STEPS:
            raise ValueError(f"step '{v.value}' cannot be updated from chat")
        return v


def _describe_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


# ============================================================================
# Dispatch
# ============================================================================


async def execute_tool(
    gateway: PersistenceGateway,
    user_id: str,
    tool_name: str,
    tool_input: dict[str, Any],
) -> str:
    """
    Execute one tool call and return the result text for the model.

    Never raises: validation failures, store failures and unknown tools all
    come back as text so the model can react on its next round.

    Args:
        gateway: Persistence gateway bound to the store
        user_id: Acting user (owner of every row written)
        tool_name: Tool name from the model's tool_use block
        tool_input: Tool arguments from the model

    Returns:
        Short human-readable result string
    """
    try:
        tool = ToolName(tool_name)
    except ValueError:
        logger.warning(f"Model requested unknown tool {tool_name} for user {user_id}")
        return f"Unknown tool: {tool_name}"

    # Argument values may carry an SSN; only keys are logged
    log_with_context(
        logger,
        logging.INFO,
        f"Executing tool {tool.value}",
        user_id=user_id,
        tool=tool.value,
        arg_keys=sorted((tool_input or {}).keys()),
    )

    try:
        match tool:
            case ToolName.SAVE_PERSONAL_INFO:
                args = SavePersonalInfoArgs.model_validate(tool_input or {})
                await gateway.arun(Operation.UPSERT_PERSONAL_INFO, user_id, args.to_payload())
                return "Personal information saved successfully."

            case ToolName.SAVE_MILITARY_SERVICE:
                args = SaveMilitaryServiceArgs.model_validate(tool_input or {})
                await gateway.arun(Operation.UPSERT_MILITARY_SERVICE, user_id, args.to_payload())
                return "Military service information saved successfully."

            case ToolName.SAVE_VA_DISABILITY_INFO:
                args = SaveVADisabilityArgs.model_validate(tool_input or {})
                await gateway.arun(Operation.UPSERT_VA_DISABILITY_INFO, user_id, args.to_payload())
                return "VA disability information saved successfully."

            case ToolName.SAVE_DISABILITY_CLAIM:
                args = SaveDisabilityClaimArgs.model_validate(tool_input or {})
                await gateway.arun(Operation.CREATE_DISABILITY_CLAIM, user_id, args.to_payload())
                return f'Disability claim "{args.disability_title}" saved successfully.'

            case ToolName.UPDATE_PHASE_STATUS:
                args = UpdatePhaseStatusArgs.model_validate(tool_input or {})
                await ProgressTracker(gateway).set_status(user_id, args.step_name, args.status)
                return f'Phase "{args.step_name.value}" status updated to "{args.status.value}".'

    except ValidationError as e:
        logger.warning(f"Invalid arguments for {tool.value}: {e.error_count()} error(s)")
        return f"Error saving data: invalid arguments for {tool.value}: {_describe_validation_error(e)}"
    except FilingEngineError as e:
        logger.warning(f"Tool {tool.value} failed for user {user_id}: {e.code}: {e}")
        return f"Error saving data: {e}"
    except Exception as e:
        logger.error(f"Error executing tool {tool.value}: {e}", exc_info=True)
        return f"Error saving data: {e}"
