"""Tests for the persistence gateway.

Covers:
- Closed operation table and payload validation
- Coalesce-on-write upserts for the singleton info tables
- Idempotent delete and cross-tenant isolation
- Error translation (connection, constraint) and the store timeout bound
"""

import time
from unittest.mock import MagicMock, patch

import httpx
import pytest
from postgrest.exceptions import APIError

from app.core.exceptions import (
    PayloadValidationError,
    StoreConnectionError,
    UnknownOperation,
    UpstreamTimeout,
)
from app.db.gateway import OPERATIONS, Operation, Verb, resolve_operation
from tests.conftest import OTHER_USER_ID, USER_ID


# ──────────────────────────────────────────────────────────────────────
# Operation table
# ──────────────────────────────────────────────────────────────────────


class TestOperationTable:
    def test_every_operation_has_a_spec(self):
        assert set(OPERATIONS) == set(Operation)

    def test_unknown_operation_rejected(self):
        with pytest.raises(UnknownOperation):
            resolve_operation("drop_table")

    def test_unknown_operation_in_envelope(self, gateway):
        result = gateway.execute("select_everything", USER_ID)
        assert not result.ok
        assert result.error.code == "UnknownOperation"
        assert result.data is None

    def test_writes_declare_a_payload_model(self):
        for op, spec in OPERATIONS.items():
            if spec.verb in (Verb.UPSERT, Verb.CREATE, Verb.UPDATE):
                assert spec.payload_model is not None, op


# ──────────────────────────────────────────────────────────────────────
# Singleton info tables
# ──────────────────────────────────────────────────────────────────────


class TestCoalesceOnWrite:
    def test_get_missing_returns_none(self, gateway):
        assert gateway.run(Operation.GET_PERSONAL_INFO, USER_ID) is None

    def test_name_only_save_keeps_address(self, gateway, fake_db):
        gateway.run(
            Operation.UPSERT_PERSONAL_INFO,
            USER_ID,
            {"first_name": "Jane", "last_name": "Doe", "address_line1": "1 Main St", "city": "Austin"},
        )
        row = gateway.run(Operation.UPSERT_PERSONAL_INFO, USER_ID, {"first_name": "Janet"})

        assert row["first_name"] == "Janet"
        assert row["last_name"] == "Doe"
        assert row["address_line1"] == "1 Main St"
        assert row["city"] == "Austin"
        assert len(fake_db.rows("personal_information")) == 1

    def test_null_and_blank_values_do_not_erase(self, gateway):
        gateway.run(Operation.UPSERT_PERSONAL_INFO, USER_ID, {"first_name": "Jane", "phone": "555-0100"})
        row = gateway.run(
            Operation.UPSERT_PERSONAL_INFO, USER_ID, {"phone": None, "city": "  ", "last_name": "Doe"}
        )

        assert row["phone"] == "555-0100"
        assert "city" not in row or row["city"] is None
        assert row["last_name"] == "Doe"

    def test_owner_column_comes_from_actor(self, gateway):
        row = gateway.run(Operation.UPSERT_MILITARY_SERVICE, USER_ID, {"branch": "Army"})
        assert row["user_id"] == USER_ID

    def test_owner_column_not_accepted_in_payload(self, gateway):
        result = gateway.execute(
            Operation.UPSERT_PERSONAL_INFO, USER_ID, {"user_id": OTHER_USER_ID, "first_name": "X"}
        )
        assert result.error.code == "ValidationError"
        assert result.error.field == "user_id"

    def test_unknown_column_rejected_before_store_call(self, gateway, fake_db):
        result = gateway.execute(Operation.UPSERT_VA_DISABILITY_INFO, USER_ID, {"rating; drop": 1})
        assert result.error.code == "ValidationError"
        assert fake_db.executed == []

    def test_rating_out_of_range(self, gateway):
        with pytest.raises(PayloadValidationError) as exc_info:
            gateway.run(Operation.UPSERT_VA_DISABILITY_INFO, USER_ID, {"current_va_rating": 130})
        assert exc_info.value.field == "current_va_rating"


# ──────────────────────────────────────────────────────────────────────
# Repeated entities
# ──────────────────────────────────────────────────────────────────────


class TestDisabilityClaims:
    def _claim(self, gateway, user_id=USER_ID, title="Tinnitus"):
        return gateway.run(
            Operation.CREATE_DISABILITY_CLAIM,
            user_id,
            {"disability_title": title, "current_rating_percentage": 10, "combat_related_code": "AC"},
        )

    def test_list_empty(self, gateway):
        assert gateway.run(Operation.GET_DISABILITY_CLAIMS, USER_ID) == []

    def test_each_save_appends(self, gateway):
        self._claim(gateway)
        self._claim(gateway)
        assert len(gateway.run(Operation.GET_DISABILITY_CLAIMS, USER_ID)) == 2

    def test_invalid_combat_code(self, gateway):
        result = gateway.execute(
            Operation.CREATE_DISABILITY_CLAIM, USER_ID, {"disability_title": "Knee", "combat_related_code": "ZZ"}
        )
        assert result.error.code == "ValidationError"

    def test_delete_is_idempotent(self, gateway):
        claim = self._claim(gateway)

        first = gateway.execute(Operation.DELETE_DISABILITY_CLAIM, USER_ID, target_id=claim["id"])
        second = gateway.execute(Operation.DELETE_DISABILITY_CLAIM, USER_ID, target_id=claim["id"])

        assert first.data == {"success": True}
        assert second.data == {"success": True}
        assert second.error is None
        assert gateway.run(Operation.GET_DISABILITY_CLAIMS, USER_ID) == []

    def test_delete_requires_target(self, gateway):
        result = gateway.execute(Operation.DELETE_DISABILITY_CLAIM, USER_ID)
        assert result.error.code == "ValidationError"
        assert result.error.field == "id"

    def test_update_by_id(self, gateway):
        claim = self._claim(gateway)
        row = gateway.run(
            Operation.UPDATE_DISABILITY_CLAIM,
            USER_ID,
            {"location_of_injury": "Kandahar"},
            target_id=claim["id"],
        )
        assert row["location_of_injury"] == "Kandahar"
        assert row["disability_title"] == "Tinnitus"


class TestCrossTenantIsolation:
    def test_other_user_cannot_delete(self, gateway):
        claim = TestDisabilityClaims()._claim(gateway, USER_ID)

        result = gateway.execute(Operation.DELETE_DISABILITY_CLAIM, OTHER_USER_ID, target_id=claim["id"])

        assert result.data == {"success": True}
        assert len(gateway.run(Operation.GET_DISABILITY_CLAIMS, USER_ID)) == 1

    def test_other_user_cannot_update(self, gateway):
        claim = TestDisabilityClaims()._claim(gateway, USER_ID)

        row = gateway.run(
            Operation.UPDATE_DISABILITY_CLAIM,
            OTHER_USER_ID,
            {"disability_title": "Hijacked"},
            target_id=claim["id"],
        )

        assert row is None
        assert gateway.run(Operation.GET_DISABILITY_CLAIMS, USER_ID)[0]["disability_title"] == "Tinnitus"

    def test_reads_are_scoped(self, gateway):
        gateway.run(Operation.UPSERT_PERSONAL_INFO, USER_ID, {"first_name": "Jane"})
        assert gateway.run(Operation.GET_PERSONAL_INFO, OTHER_USER_ID) is None


# ──────────────────────────────────────────────────────────────────────
# Users, status, payments
# ──────────────────────────────────────────────────────────────────────


class TestOtherTables:
    def test_create_user_is_insert_if_absent(self, gateway, fake_db):
        first = gateway.run(Operation.CREATE_USER, USER_ID, {"email": "a@example.com"})
        second = gateway.run(Operation.CREATE_USER, USER_ID, {"email": "b@example.com"})

        assert first["id"] == USER_ID
        assert second["email"] == "a@example.com"
        assert len(fake_db.rows("users")) == 1

    def test_packet_status_completed_at_follows_status(self, gateway):
        done = gateway.run(
            Operation.UPSERT_PACKET_STATUS, USER_ID, {"step_name": "eligibility", "step_status": "completed"}
        )
        assert done["completed_at"] is not None

        reopened = gateway.run(
            Operation.UPSERT_PACKET_STATUS, USER_ID, {"step_name": "eligibility", "step_status": "in_progress"}
        )
        assert reopened["completed_at"] is None

    def test_payment_amount_bounds(self, gateway):
        result = gateway.execute(
            Operation.CREATE_PAYMENT,
            USER_ID,
            {"provider_reference_id": "pi_1", "amount": 0, "status": "succeeded"},
        )
        assert result.error.code == "ValidationError"
        assert result.error.field == "amount"

    def test_chat_message_requires_text(self, gateway):
        result = gateway.execute(Operation.ADD_CHAT_MESSAGE, USER_ID, {"role": "user", "message": ""})
        assert result.error.code == "ValidationError"


# ──────────────────────────────────────────────────────────────────────
# Failures
# ──────────────────────────────────────────────────────────────────────


class TestFailures:
    def test_connection_error(self, gateway, fake_db):
        fake_db.fail_with = httpx.ConnectError("connection refused")

        with pytest.raises(StoreConnectionError) as exc_info:
            gateway.run(Operation.GET_PERSONAL_INFO, USER_ID)

        assert isinstance(exc_info.value, ConnectionError)
        assert gateway.execute(Operation.GET_PERSONAL_INFO, USER_ID).error.code == "ConnectionError"

    def test_connection_error_not_retried(self, gateway, fake_db):
        fake_db.fail_with = httpx.ConnectError("connection refused")
        gateway.execute(Operation.GET_PERSONAL_INFO, USER_ID)
        assert len(fake_db.executed) == 1

    def test_constraint_violation_names_field(self, gateway, fake_db):
        fake_db.fail_with = APIError(
            {
                "code": "23503",
                "message": 'insert or update on table "disability_claims" violates foreign key constraint',
                "details": 'Key (user_id)=(x) is not present in table "users".',
                "hint": None,
            }
        )

        result = gateway.execute(
            Operation.CREATE_DISABILITY_CLAIM,
            USER_ID,
            {"disability_title": "Knee", "current_rating_percentage": 10, "combat_related_code": "HS"},
        )

        assert result.error.code == "ConstraintError"
        assert result.error.field == "user_id"

    @pytest.mark.asyncio
    async def test_store_timeout(self, gateway):
        settings = MagicMock(STORE_TIMEOUT_SECONDS=0.01)

        with patch("app.db.gateway.get_settings", return_value=settings), patch.object(
            gateway, "run", side_effect=lambda *args: time.sleep(0.2)
        ):
            with pytest.raises(UpstreamTimeout) as exc_info:
                await gateway.arun(Operation.GET_PERSONAL_INFO, USER_ID)

        assert exc_info.value.target == "store"

    @pytest.mark.asyncio
    async def test_aexecute_envelope(self, gateway):
        result = await gateway.aexecute(Operation.GET_DOCUMENTS, USER_ID)
        assert result.ok
        assert result.data == []
