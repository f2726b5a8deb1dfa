"""
Progress state machine for the CRSC application.

Each step carries one of four statuses, independently settable:

  not_started → in_progress → completed
                     ↘ requires_review

Statuses are set by the chat model (update_phase_status tool) and by the UI.
The percentage counts completed steps only. Completeness derived from the
persisted data is reported alongside as advisory discrepancies; it never
overrides a status.
"""

import math
from typing import Iterable

from app.core.chat_context import FilingSnapshot, load_filing_snapshot
from app.core.logging import get_logger
from app.core.schemas_filing import ProgressSummary, StepName, StepProgress, StepStatus
from app.db.gateway import Operation, PersistenceGateway

logger = get_logger(__name__)

# Steps counted by the progress bar, in display order
TRACKED_STEPS: tuple[StepName, ...] = tuple(StepName)

# Minimum persisted fields for a section to count as complete
REQUIRED_FIELDS: dict[StepName, tuple[str, ...]] = {
    StepName.PERSONAL_INFO: ("first_name", "last_name", "email", "ssn_encrypted"),
    StepName.MILITARY_SERVICE: ("branch", "retired_rank", "retirement_date"),
    StepName.VA_DISABILITY: ("va_file_number", "current_va_rating"),
}


def compute_progress(steps: Iterable[StepProgress]) -> tuple[int, int, float, int]:
    """Return (completed, total, ratio, percentage) over TRACKED_STEPS.

    The percentage rounds half up, so 1 of 8 steps reads 13%.
    """
    completed = sum(
        1 for s in steps if s.step_name in TRACKED_STEPS and s.status == StepStatus.COMPLETED
    )
    total = len(TRACKED_STEPS)
    ratio = completed / total
    return completed, total, ratio, math.floor(ratio * 100 + 0.5)


def missing_requirements(step: StepName, snapshot: FilingSnapshot) -> list[str]:
    """Fields (or items) the persisted data still lacks for a step."""
    if step == StepName.DISABILITY_CLAIMS:
        return [] if snapshot.claims else ["at least one disability claim"]
    if step == StepName.DOCUMENTS:
        has_dd214 = any(d.get("document_type") == "dd214" for d in snapshot.documents)
        return [] if has_dd214 else ["dd214 document"]

    required = REQUIRED_FIELDS.get(step)
    if required is None:
        return []
    row = {
        StepName.PERSONAL_INFO: snapshot.personal_info,
        StepName.MILITARY_SERVICE: snapshot.military_service,
        StepName.VA_DISABILITY: snapshot.va_disability,
    }[step] or {}
    return [f for f in required if row.get(f) in (None, "")]


def find_discrepancies(steps: Iterable[StepProgress], snapshot: FilingSnapshot) -> list[str]:
    """Steps marked completed whose persisted data does not back it up."""
    notes = []
    for s in steps:
        if s.status != StepStatus.COMPLETED:
            continue
        missing = missing_requirements(s.step_name, snapshot)
        if missing:
            notes.append(f"{s.step_name.value} marked completed but missing: {', '.join(missing)}")
    return notes


class ProgressTracker:
    """Reads and writes per-user step statuses through the gateway."""

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    async def get_steps(self, user_id: str) -> list[StepProgress]:
        """All tracked steps, defaulting to not_started where no row exists."""
        rows = await self.gateway.arun(Operation.GET_PACKET_STATUS, user_id)
        known: dict[StepName, StepProgress] = {}
        for row in rows:
            try:
                step = StepName(row.get("step_name"))
                status = StepStatus(row.get("step_status") or StepStatus.NOT_STARTED.value)
            except ValueError:
                logger.warning(f"Ignoring unrecognised packet_status row: {row.get('step_name')}")
                continue
            known[step] = StepProgress(
                step_name=step, status=status, completed_at=row.get("completed_at")
            )
        return [known.get(step, StepProgress(step_name=step)) for step in TRACKED_STEPS]

    async def set_status(self, user_id: str, step: StepName, status: StepStatus) -> StepProgress:
        """Upsert one step; other steps are untouched."""
        row = await self.gateway.arun(
            Operation.UPSERT_PACKET_STATUS,
            user_id,
            {"step_name": step.value, "step_status": status.value},
        )
        logger.info(f"Step {step.value} → {status.value} for user {user_id}")
        return StepProgress(
            step_name=step,
            status=status,
            completed_at=(row or {}).get("completed_at"),
        )

    async def reset(self, user_id: str) -> None:
        await self.gateway.arun(Operation.RESET_PACKET_STATUS, user_id)

    async def summary(self, user_id: str, check_data: bool = True) -> ProgressSummary:
        steps = await self.get_steps(user_id)
        completed, total, ratio, percentage = compute_progress(steps)

        discrepancies: list[str] = []
        if check_data:
            snapshot = await load_filing_snapshot(self.gateway, user_id, include_documents=True)
            discrepancies = find_discrepancies(steps, snapshot)

        return ProgressSummary(
            steps=steps,
            completed_steps=completed,
            total_steps=total,
            ratio=ratio,
            percentage=percentage,
            discrepancies=discrepancies,
        )
