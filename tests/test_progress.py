"""Tests for the progress state machine."""

import pytest

from app.core.chat_context import FilingSnapshot
from app.core.progress import (
    TRACKED_STEPS,
    ProgressTracker,
    compute_progress,
    find_discrepancies,
    missing_requirements,
)
from app.core.schemas_filing import StepName, StepProgress, StepStatus
from app.db.gateway import Operation
from tests.conftest import OTHER_USER_ID, USER_ID


def _steps(**statuses: StepStatus) -> list[StepProgress]:
    return [
        StepProgress(step_name=step, status=statuses.get(step.value, StepStatus.NOT_STARTED))
        for step in TRACKED_STEPS
    ]


class TestComputeProgress:
    def test_eight_tracked_steps(self):
        assert len(TRACKED_STEPS) == 8

    def test_three_of_eight(self):
        steps = _steps(
            eligibility=StepStatus.COMPLETED,
            personal_info=StepStatus.COMPLETED,
            military_service=StepStatus.COMPLETED,
            va_disability=StepStatus.IN_PROGRESS,
        )
        completed, total, ratio, percentage = compute_progress(steps)

        assert (completed, total) == (3, 8)
        assert ratio == 3 / 8
        assert percentage == 38

    def test_half_rounds_up(self):
        assert compute_progress(_steps(eligibility=StepStatus.COMPLETED))[3] == 13

    def test_requires_review_is_not_completed(self):
        steps = _steps(eligibility=StepStatus.REQUIRES_REVIEW)
        assert compute_progress(steps)[0] == 0

    def test_all_completed(self):
        steps = _steps(**{s.value: StepStatus.COMPLETED for s in TRACKED_STEPS})
        assert compute_progress(steps)[3] == 100


class TestDerivedCompleteness:
    def test_personal_info_missing_fields(self):
        snapshot = FilingSnapshot(personal_info={"first_name": "Jane", "last_name": "Doe"})
        assert missing_requirements(StepName.PERSONAL_INFO, snapshot) == ["email", "ssn_encrypted"]

    def test_claims_need_at_least_one(self):
        assert missing_requirements(StepName.DISABILITY_CLAIMS, FilingSnapshot()) == [
            "at least one disability claim"
        ]
        assert missing_requirements(StepName.DISABILITY_CLAIMS, FilingSnapshot(claims=[{"id": "c"}])) == []

    def test_documents_need_dd214(self):
        snapshot = FilingSnapshot(documents=[{"document_type": "va_code_sheet"}])
        assert missing_requirements(StepName.DOCUMENTS, snapshot) == ["dd214 document"]

    def test_discrepancies_only_for_completed_steps(self):
        steps = _steps(personal_info=StepStatus.COMPLETED, military_service=StepStatus.IN_PROGRESS)
        notes = find_discrepancies(steps, FilingSnapshot())

        assert len(notes) == 1
        assert notes[0].startswith("personal_info marked completed")


class TestProgressTracker:
    @pytest.mark.asyncio
    async def test_defaults_to_not_started(self, gateway):
        steps = await ProgressTracker(gateway).get_steps(USER_ID)
        assert [s.step_name for s in steps] == list(TRACKED_STEPS)
        assert all(s.status == StepStatus.NOT_STARTED for s in steps)

    @pytest.mark.asyncio
    async def test_steps_are_independent(self, gateway):
        tracker = ProgressTracker(gateway)
        await tracker.set_status(USER_ID, StepName.ELIGIBILITY, StepStatus.COMPLETED)
        await tracker.set_status(USER_ID, StepName.PERSONAL_INFO, StepStatus.IN_PROGRESS)
        await tracker.set_status(USER_ID, StepName.ELIGIBILITY, StepStatus.REQUIRES_REVIEW)

        by_name = {s.step_name: s.status for s in await tracker.get_steps(USER_ID)}
        assert by_name[StepName.ELIGIBILITY] == StepStatus.REQUIRES_REVIEW
        assert by_name[StepName.PERSONAL_INFO] == StepStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_one_row_per_step(self, gateway, fake_db):
        tracker = ProgressTracker(gateway)
        for status in (StepStatus.IN_PROGRESS, StepStatus.COMPLETED, StepStatus.COMPLETED):
            await tracker.set_status(USER_ID, StepName.MILITARY_SERVICE, status)
        assert len(fake_db.rows("packet_status")) == 1

    @pytest.mark.asyncio
    async def test_summary_percentage(self, gateway):
        tracker = ProgressTracker(gateway)
        for step in (StepName.ELIGIBILITY, StepName.PERSONAL_INFO, StepName.MILITARY_SERVICE):
            await tracker.set_status(USER_ID, step, StepStatus.COMPLETED)

        summary = await tracker.summary(USER_ID)

        assert summary.completed_steps == 3
        assert summary.total_steps == 8
        assert summary.percentage == 38

    @pytest.mark.asyncio
    async def test_summary_flags_unbacked_completion(self, gateway):
        tracker = ProgressTracker(gateway)
        await tracker.set_status(USER_ID, StepName.DISABILITY_CLAIMS, StepStatus.COMPLETED)

        summary = await tracker.summary(USER_ID)

        # Status is trusted; the gap is only reported
        assert summary.completed_steps == 1
        assert any("disability_claims" in d for d in summary.discrepancies)

    @pytest.mark.asyncio
    async def test_reset_clears_only_this_user(self, gateway):
        tracker = ProgressTracker(gateway)
        await tracker.set_status(USER_ID, StepName.ELIGIBILITY, StepStatus.COMPLETED)
        await tracker.set_status(OTHER_USER_ID, StepName.ELIGIBILITY, StepStatus.COMPLETED)

        await tracker.reset(USER_ID)

        assert (await tracker.summary(USER_ID, check_data=False)).completed_steps == 0
        assert (await tracker.summary(OTHER_USER_ID, check_data=False)).completed_steps == 1

    @pytest.mark.asyncio
    async def test_unknown_step_rows_ignored(self, gateway, fake_db):
        fake_db.seed("packet_status", user_id=USER_ID, step_name="legacy_step", step_status="completed")
        steps = await ProgressTracker(gateway).get_steps(USER_ID)
        assert len(steps) == 8

    @pytest.mark.asyncio
    async def test_reset_keeps_collected_data(self, gateway):
        await gateway.arun(Operation.UPSERT_PERSONAL_INFO, USER_ID, {"first_name": "Jane"})
        await ProgressTracker(gateway).reset(USER_ID)
        assert (await gateway.arun(Operation.GET_PERSONAL_INFO, USER_ID))["first_name"] == "Jane"
