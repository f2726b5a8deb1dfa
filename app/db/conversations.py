"""Conversation store: append-only visible chat log per user."""

from typing import Any

from app.core.logging import get_logger
from app.core.schemas_filing import ChatRole, ConversationTurn
from app.db.gateway import Operation, PersistenceGateway

logger = get_logger(__name__)


def _to_turn(row: dict[str, Any]) -> ConversationTurn:
    return ConversationTurn(
        id=str(row["id"]),
        role=row["role"],
        text=row.get("message") or "",
        timestamp=row.get("created_at"),
    )


class ConversationStore:
    """Ordered user/assistant turns, oldest first.

    Only narration is ever written here; tool-call scaffolding lives in the
    orchestrator's model transcript and never reaches this table.
    """

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    async def list_turns(self, user_id: str) -> list[ConversationTurn]:
        rows = await self.gateway.arun(Operation.GET_CHAT_HISTORY, user_id)
        return [_to_turn(row) for row in rows]

    async def append(self, user_id: str, role: ChatRole, text: str) -> ConversationTurn:
        row = await self.gateway.arun(
            Operation.ADD_CHAT_MESSAGE,
            user_id,
            {"role": role.value, "message": text},
        )
        return _to_turn(row)

    async def append_exchange(
        self, user_id: str, user_text: str, assistant_text: str
    ) -> tuple[ConversationTurn, ConversationTurn]:
        """Persist one resolved exchange: exactly one user and one assistant turn."""
        user_turn = await self.append(user_id, ChatRole.USER, user_text)
        assistant_turn = await self.append(user_id, ChatRole.ASSISTANT, assistant_text)
        logger.info(
            f"Persisted exchange for user {user_id}: "
            f"user_turn={user_turn.id}, assistant_turn={assistant_turn.id}"
        )
        return user_turn, assistant_turn

    async def clear(self, user_id: str) -> None:
        await self.gateway.arun(Operation.CLEAR_CHAT_HISTORY, user_id)
        logger.info(f"Cleared chat history for user {user_id}")
