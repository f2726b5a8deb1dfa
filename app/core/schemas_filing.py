"""Pydantic schemas for CRSC filing data."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Enums
# ============================================================================


class Branch(str, Enum):
    """Branch of service as named in the chat tool schema."""
    ARMY = "Army"
    NAVY = "Navy"
    AIR_FORCE = "Air Force"
    MARINE_CORPS = "Marine Corps"
    COAST_GUARD = "Coast Guard"
    SPACE_FORCE = "Space Force"


class RetirementType(str, Enum):
    """Basis of military retirement."""
    TWENTY_YEARS = "20+ years"
    CHAPTER_61 = "Chapter 61"
    TERA = "TERA"
    TDRL = "TDRL"
    PDRL = "PDRL"


class CombatRelatedCode(str, Enum):
    """CRSC combat-related classification of a disability."""
    PH = "PH"  # Purple Heart
    AC = "AC"  # Armed Conflict
    HS = "HS"  # Hazardous Service
    SW = "SW"  # Simulating War
    IN = "IN"  # Instrument of War
    AO = "AO"  # Agent Orange
    RE = "RE"  # Radiation Exposure
    GW = "GW"  # Gulf War
    MG = "MG"  # Mustard Gas


COMBAT_RELATED_CODE_NAMES: dict[CombatRelatedCode, str] = {
    CombatRelatedCode.PH: "Purple Heart",
    CombatRelatedCode.AC: "Armed Conflict",
    CombatRelatedCode.HS: "Hazardous Service",
    CombatRelatedCode.SW: "Simulating War",
    CombatRelatedCode.IN: "Instrument of War",
    CombatRelatedCode.AO: "Agent Orange",
    CombatRelatedCode.RE: "Radiation Exposure",
    CombatRelatedCode.GW: "Gulf War",
    CombatRelatedCode.MG: "Mustard Gas",
}


class StepName(str, Enum):
    """Application steps tracked in the packet_status table."""
    ELIGIBILITY = "eligibility"
    PERSONAL_INFO = "personal_info"
    MILITARY_SERVICE = "military_service"
    VA_DISABILITY = "va_disability"
    DISABILITY_CLAIMS = "disability_claims"
    DOCUMENTS = "documents"
    REVIEW = "review"
    PAYMENT = "payment"


# Steps the chat model may move; review and payment belong to the UI flow
CHAT_STEPS: tuple[StepName, ...] = (
    StepName.ELIGIBILITY,
    StepName.PERSONAL_INFO,
    StepName.MILITARY_SERVICE,
    StepName.VA_DISABILITY,
    StepName.DISABILITY_CLAIMS,
    StepName.DOCUMENTS,
)


class StepStatus(str, Enum):
    """Completion state of one application step."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REQUIRES_REVIEW = "requires_review"


class ChatRole(str, Enum):
    """Author of a conversation turn."""
    USER = "user"
    ASSISTANT = "assistant"


# ============================================================================
# Gateway payloads
#
# Every writable table has a payload model. Unknown keys are rejected so a
# caller can never address a column that is not listed here, and the owner
# column (user_id) is never part of a payload.
# ============================================================================


class FilingPayload(BaseModel):
    """Base for write payloads: unknown keys rejected, blank strings are null."""

    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, values: Any) -> Any:
        if isinstance(values, dict):
            return {
                k: (None if isinstance(v, str) and not v.strip() else v)
                for k, v in values.items()
            }
        return values

    def to_row(self) -> dict[str, Any]:
        """Columns with a present, non-null value (the coalesce-on-write set)."""
        return self.model_dump(mode="json", exclude_none=True)


class UserCreate(FilingPayload):
    email: str


class UserUpdate(FilingPayload):
    # Admin and verification flags are set outside the chat flow
    profile_completed: Optional[bool] = None
    packet_status: Optional[str] = None
    last_login: Optional[datetime] = None


class PersonalInfoPayload(FilingPayload):
    first_name: Optional[str] = None
    middle_initial: Optional[str] = Field(default=None, max_length=1)
    last_name: Optional[str] = None
    ssn_encrypted: Optional[str] = None
    date_of_birth: Optional[date] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(default=None, max_length=2)
    zip_code: Optional[str] = None


class MilitaryServicePayload(FilingPayload):
    branch: Optional[str] = None
    service_number: Optional[str] = None
    retired_rank: Optional[str] = None
    retirement_date: Optional[date] = None
    years_of_service: Optional[float] = Field(default=None, ge=0)
    retirement_type: Optional[str] = None
    dd214_uploaded: Optional[bool] = None
    retirement_orders_uploaded: Optional[bool] = None


class VADisabilityPayload(FilingPayload):
    va_file_number: Optional[str] = None
    current_va_rating: Optional[int] = Field(default=None, ge=0, le=100)
    va_decision_date: Optional[date] = None
    has_va_waiver: Optional[bool] = None
    receives_crdp: Optional[bool] = None
    code_sheet_uploaded: Optional[bool] = None
    decision_letter_uploaded: Optional[bool] = None


class DisabilityClaimPayload(FilingPayload):
    disability_title: Optional[str] = None
    disability_code: Optional[str] = None
    body_part_affected: Optional[str] = None
    date_awarded_by_va: Optional[date] = None
    initial_rating_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    current_rating_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    combat_related_code: Optional[CombatRelatedCode] = None
    unit_of_assignment: Optional[str] = None
    location_of_injury: Optional[str] = None
    description_of_event: Optional[str] = None
    received_purple_heart: Optional[bool] = None
    has_secondary_conditions: Optional[bool] = None


class DocumentPayload(FilingPayload):
    document_type: Optional[str] = None
    file_name: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)
    mime_type: Optional[str] = None


class ChatMessagePayload(FilingPayload):
    role: ChatRole
    message: str = Field(..., min_length=1)


class PacketStatusPayload(FilingPayload):
    step_name: StepName
    step_status: StepStatus


class PaymentPayload(FilingPayload):
    provider_reference_id: str
    amount: float = Field(..., gt=0, le=10000)
    status: str
    paid_at: Optional[datetime] = None


# ============================================================================
# Read models
# ============================================================================


class ConversationTurn(BaseModel):
    """One visible chat turn."""
    id: str
    role: ChatRole
    text: str
    timestamp: Optional[datetime] = None


class StepProgress(BaseModel):
    """Status of one application step."""
    step_name: StepName
    status: StepStatus = StepStatus.NOT_STARTED
    completed_at: Optional[datetime] = None


class ProgressSummary(BaseModel):
    """Per-user progress surfaced to the progress bar."""
    steps: list[StepProgress]
    completed_steps: int
    total_steps: int
    ratio: float
    percentage: int
    discrepancies: list[str] = Field(default_factory=list)
