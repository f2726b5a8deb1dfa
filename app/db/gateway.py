"""Persistence gateway, the single entry point for filing-data reads and writes.

Every operation name maps to exactly one table and one verb through the
closed OPERATIONS table. Values only ever travel to PostgREST as JSON bodies
and filter parameters, and payload keys are checked against per-table models
before a request is built.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

import httpx
from postgrest.exceptions import APIError
from pydantic import BaseModel, ValidationError
from supabase import Client

from app.core.config import get_settings
from app.core.exceptions import (
    ConstraintError,
    FilingEngineError,
    PayloadValidationError,
    PersistenceError,
    StoreConnectionError,
    UnknownOperation,
    UpstreamTimeout,
)
from app.core.logging import get_logger, log_with_context
from app.core.schemas_filing import (
    ChatMessagePayload,
    DisabilityClaimPayload,
    DocumentPayload,
    FilingPayload,
    MilitaryServicePayload,
    PacketStatusPayload,
    PaymentPayload,
    PersonalInfoPayload,
    StepStatus,
    UserCreate,
    UserUpdate,
    VADisabilityPayload,
)
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


class Verb(str, Enum):
    GET = "get"
    LIST = "list"
    UPSERT = "upsert"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CLEAR = "clear"


class Operation(str, Enum):
    """Closed set of gateway operations."""
    GET_USER = "get_user"
    CREATE_USER = "create_user"
    UPDATE_USER = "update_user"
    GET_PERSONAL_INFO = "get_personal_info"
    UPSERT_PERSONAL_INFO = "upsert_personal_info"
    GET_MILITARY_SERVICE = "get_military_service"
    UPSERT_MILITARY_SERVICE = "upsert_military_service"
    GET_VA_DISABILITY_INFO = "get_va_disability_info"
    UPSERT_VA_DISABILITY_INFO = "upsert_va_disability_info"
    GET_DISABILITY_CLAIMS = "get_disability_claims"
    CREATE_DISABILITY_CLAIM = "create_disability_claim"
    UPDATE_DISABILITY_CLAIM = "update_disability_claim"
    DELETE_DISABILITY_CLAIM = "delete_disability_claim"
    GET_DOCUMENTS = "get_documents"
    CREATE_DOCUMENT = "create_document"
    DELETE_DOCUMENT = "delete_document"
    GET_CHAT_HISTORY = "get_chat_history"
    ADD_CHAT_MESSAGE = "add_chat_message"
    CLEAR_CHAT_HISTORY = "clear_chat_history"
    GET_PACKET_STATUS = "get_packet_status"
    UPSERT_PACKET_STATUS = "upsert_packet_status"
    RESET_PACKET_STATUS = "reset_packet_status"
    GET_PAYMENTS = "get_payments"
    CREATE_PAYMENT = "create_payment"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _stamp_completion(row: dict[str, Any]) -> dict[str, Any]:
    """completed_at follows step_status: set on completed, cleared otherwise."""
    completed = row.get("step_status") == StepStatus.COMPLETED.value
    return {**row, "completed_at": _now() if completed else None}


@dataclass(frozen=True)
class OperationSpec:
    """How one operation touches the store."""

    table: str
    verb: Verb
    payload_model: type[FilingPayload] | None = None
    owner_column: str = "user_id"
    conflict_key: str | None = None
    order_by: str | None = None
    order_desc: bool = False
    touch_updated_at: bool = False
    insert_if_absent: bool = False
    row_hook: Callable[[dict[str, Any]], dict[str, Any]] | None = None


OPERATIONS: dict[Operation, OperationSpec] = {
    # users: the owner column is the primary key itself
    Operation.GET_USER: OperationSpec("users", Verb.GET, owner_column="id"),
    Operation.CREATE_USER: OperationSpec(
        "users", Verb.CREATE, UserCreate, owner_column="id", insert_if_absent=True
    ),
    Operation.UPDATE_USER: OperationSpec(
        "users", Verb.UPDATE, UserUpdate, owner_column="id", touch_updated_at=True
    ),
    # singleton-per-user info tables
    Operation.GET_PERSONAL_INFO: OperationSpec("personal_information", Verb.GET),
    Operation.UPSERT_PERSONAL_INFO: OperationSpec(
        "personal_information", Verb.UPSERT, PersonalInfoPayload,
        conflict_key="user_id", touch_updated_at=True,
    ),
    Operation.GET_MILITARY_SERVICE: OperationSpec("military_service", Verb.GET),
    Operation.UPSERT_MILITARY_SERVICE: OperationSpec(
        "military_service", Verb.UPSERT, MilitaryServicePayload,
        conflict_key="user_id", touch_updated_at=True,
    ),
    Operation.GET_VA_DISABILITY_INFO: OperationSpec("va_disability_info", Verb.GET),
    Operation.UPSERT_VA_DISABILITY_INFO: OperationSpec(
        "va_disability_info", Verb.UPSERT, VADisabilityPayload,
        conflict_key="user_id", touch_updated_at=True,
    ),
    # repeated entities
    Operation.GET_DISABILITY_CLAIMS: OperationSpec(
        "disability_claims", Verb.LIST, order_by="created_at"
    ),
    Operation.CREATE_DISABILITY_CLAIM: OperationSpec(
        "disability_claims", Verb.CREATE, DisabilityClaimPayload
    ),
    Operation.UPDATE_DISABILITY_CLAIM: OperationSpec(
        "disability_claims", Verb.UPDATE, DisabilityClaimPayload, touch_updated_at=True
    ),
    Operation.DELETE_DISABILITY_CLAIM: OperationSpec("disability_claims", Verb.DELETE),
    Operation.GET_DOCUMENTS: OperationSpec(
        "documents", Verb.LIST, order_by="uploaded_at", order_desc=True
    ),
    Operation.CREATE_DOCUMENT: OperationSpec("documents", Verb.CREATE, DocumentPayload),
    Operation.DELETE_DOCUMENT: OperationSpec("documents", Verb.DELETE),
    # conversation log
    Operation.GET_CHAT_HISTORY: OperationSpec("chat_history", Verb.LIST, order_by="created_at"),
    Operation.ADD_CHAT_MESSAGE: OperationSpec("chat_history", Verb.CREATE, ChatMessagePayload),
    Operation.CLEAR_CHAT_HISTORY: OperationSpec("chat_history", Verb.CLEAR),
    # step status
    Operation.GET_PACKET_STATUS: OperationSpec("packet_status", Verb.LIST, order_by="created_at"),
    Operation.UPSERT_PACKET_STATUS: OperationSpec(
        "packet_status", Verb.UPSERT, PacketStatusPayload,
        conflict_key="user_id,step_name", touch_updated_at=True, row_hook=_stamp_completion,
    ),
    Operation.RESET_PACKET_STATUS: OperationSpec("packet_status", Verb.CLEAR),
    # payments
    Operation.GET_PAYMENTS: OperationSpec(
        "payments", Verb.LIST, order_by="created_at", order_desc=True
    ),
    Operation.CREATE_PAYMENT: OperationSpec("payments", Verb.CREATE, PaymentPayload),
}


def resolve_operation(name: str | Operation) -> Operation:
    """Look up an operation by name; anything outside the table is rejected."""
    try:
        return Operation(name)
    except ValueError:
        raise UnknownOperation(f"Unknown operation: {name}") from None


class GatewayErrorDetail(BaseModel):
    code: str
    message: str
    field: str | None = None


class GatewayResult(BaseModel):
    """Uniform {data, error} envelope."""

    data: Any = None
    error: GatewayErrorDetail | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, exc: FilingEngineError) -> "GatewayResult":
        return cls(
            data=None,
            error=GatewayErrorDetail(
                code=exc.code, message=str(exc), field=getattr(exc, "field", None)
            ),
        )


# PostgreSQL SQLSTATE classes: 23 = integrity constraint, 22 = data exception
_COLUMN_RE = re.compile(r'column "(?P<field>[\w]+)"')
_KEY_RE = re.compile(r"Key \((?P<field>[\w, ]+)\)")


def _violated_field(error: APIError) -> str | None:
    for text in (error.message or "", error.details or ""):
        match = _COLUMN_RE.search(str(text)) or _KEY_RE.search(str(text))
        if match:
            return match.group("field")
    return None


def _translate_error(exc: Exception) -> PersistenceError:
    if isinstance(exc, APIError):
        code = str(exc.code or "")
        field = _violated_field(exc)
        if code.startswith("23"):
            return ConstraintError(exc.message or "Constraint violation", field=field)
        if code.startswith("22") or code == "PGRST204":
            return PayloadValidationError(exc.message or "Invalid value", field=field)
        return PersistenceError(exc.message or "Database operation failed", field=field)
    if isinstance(exc, (httpx.TransportError, ConnectionError, OSError)):
        return StoreConnectionError(f"Store unreachable: {exc}")
    return PersistenceError(str(exc) or exc.__class__.__name__)


class PersistenceGateway:
    """Executes gateway operations against Supabase on behalf of one actor."""

    def __init__(self, client: Client | None = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def execute(
        self,
        operation: str | Operation,
        actor_id: str,
        payload: dict[str, Any] | None = None,
        target_id: str | None = None,
    ) -> GatewayResult:
        """Run an operation and wrap the outcome in a {data, error} envelope."""
        try:
            return GatewayResult(data=self.run(operation, actor_id, payload, target_id))
        except PersistenceError as e:
            log_with_context(
                logger,
                logging.WARNING,
                f"Gateway operation failed: {e}",
                user_id=actor_id,
                operation=getattr(operation, "value", operation),
                error_code=e.code,
            )
            return GatewayResult.failure(e)

    async def aexecute(
        self,
        operation: str | Operation,
        actor_id: str,
        payload: dict[str, Any] | None = None,
        target_id: str | None = None,
    ) -> GatewayResult:
        """Async variant of execute(); a store timeout is reported in the envelope."""
        try:
            return GatewayResult(data=await self.arun(operation, actor_id, payload, target_id))
        except (PersistenceError, UpstreamTimeout) as e:
            log_with_context(
                logger,
                logging.WARNING,
                f"Gateway operation failed: {e}",
                user_id=actor_id,
                operation=getattr(operation, "value", operation),
                error_code=e.code,
            )
            return GatewayResult.failure(e)

    async def arun(
        self,
        operation: str | Operation,
        actor_id: str,
        payload: dict[str, Any] | None = None,
        target_id: str | None = None,
    ) -> Any:
        """Async variant of run(), bounded by STORE_TIMEOUT_SECONDS."""
        timeout = get_settings().STORE_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.run, operation, actor_id, payload, target_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise UpstreamTimeout("store", timeout) from None

    def run(
        self,
        operation: str | Operation,
        actor_id: str,
        payload: dict[str, Any] | None = None,
        target_id: str | None = None,
    ) -> Any:
        """Run an operation and return its data.

        Raises:
            UnknownOperation: operation is not in the closed table
            PayloadValidationError: payload rejected before any store call
            StoreConnectionError: store unreachable (never retried here)
            ConstraintError: a database constraint rejected the write
        """
        op = resolve_operation(operation)
        spec = OPERATIONS[op]

        if not actor_id:
            raise PayloadValidationError("actor id is required", field="userId")

        row = self._validated_row(spec, payload)
        targets_row = spec.verb == Verb.DELETE or (
            spec.verb == Verb.UPDATE and spec.owner_column != "id"
        )
        if targets_row and not target_id:
            raise PayloadValidationError(f"{op.value} requires a target id", field="id")

        try:
            return self._dispatch(spec, actor_id, row, target_id)
        except PersistenceError:
            raise
        except Exception as e:
            raise _translate_error(e) from e

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validated_row(spec: OperationSpec, payload: dict[str, Any] | None) -> dict[str, Any]:
        if spec.payload_model is None:
            return {}
        try:
            model = spec.payload_model.model_validate(payload or {})
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or None
            raise PayloadValidationError(
                f"Invalid {spec.table} payload: {first.get('msg')}", field=field
            ) from e

        row = model.to_row()
        if spec.touch_updated_at:
            row["updated_at"] = _now()
        if spec.row_hook is not None:
            row = spec.row_hook(row)
        return row

    def _dispatch(
        self,
        spec: OperationSpec,
        actor_id: str,
        row: dict[str, Any],
        target_id: str | None,
    ) -> Any:
        table = self.client.table(spec.table)
        owner = spec.owner_column

        match spec.verb:
            case Verb.GET:
                response = table.select("*").eq(owner, actor_id).limit(1).execute()
                return response.data[0] if response.data else None

            case Verb.LIST:
                query = table.select("*").eq(owner, actor_id)
                if spec.order_by:
                    query = query.order(spec.order_by, desc=spec.order_desc)
                return query.execute().data or []

            case Verb.UPSERT:
                record = {**row, owner: actor_id}
                response = table.upsert(record, on_conflict=spec.conflict_key).execute()
                return response.data[0] if response.data else None

            case Verb.CREATE:
                record = {**row, owner: actor_id}
                if spec.insert_if_absent:
                    table.upsert(record, on_conflict=owner, ignore_duplicates=True).execute()
                    response = (
                        self.client.table(spec.table).select("*").eq(owner, actor_id).limit(1).execute()
                    )
                else:
                    response = table.insert(record).execute()
                return response.data[0] if response.data else None

            case Verb.UPDATE:
                query = table.update(row).eq(owner, actor_id)
                if owner != "id":
                    query = query.eq("id", target_id)
                response = query.execute()
                return response.data[0] if response.data else None

            case Verb.DELETE:
                table.delete().eq("id", target_id).eq(owner, actor_id).execute()
                return {"success": True}

            case Verb.CLEAR:
                table.delete().eq(owner, actor_id).execute()
                return {"success": True}


def get_gateway() -> PersistenceGateway:
    """FastAPI dependency / default gateway bound to the shared Supabase client."""
    return PersistenceGateway()
