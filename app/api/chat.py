"""Chat assistant API endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from app.api.errors import to_http_exception
from app.core.chat_orchestrator import ChatOrchestrator
from app.core.chat_stream import ChatStreamConfig, generate_chat_stream
from app.core.config import get_settings
from app.core.exceptions import FilingEngineError
from app.core.llm import AnthropicChatModel, ChatModel
from app.core.logging import get_logger
from app.core.rate_limiter import check_chat_rate_limit
from app.core.schemas_filing import ChatRole, ConversationTurn
from app.db.conversations import ConversationStore
from app.db.gateway import PersistenceGateway, get_gateway

logger = get_logger(__name__)

router = APIRouter()


class ChatMessage(BaseModel):
    """A single chat message."""

    role: ChatRole
    content: str


class ChatRequest(BaseModel):
    """Request to chat with the filing assistant."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1, alias="userId")
    message: str = Field(..., min_length=1)
    conversation_history: List[ChatMessage] = Field(default_factory=list, alias="conversationHistory")

    def history(self) -> list[dict[str, str]]:
        return [{"role": m.role.value, "content": m.content} for m in self.conversation_history]


class ChatReply(BaseModel):
    reply: str


def get_chat_model() -> ChatModel:
    """FastAPI dependency for the chat model."""
    if not get_settings().ANTHROPIC_API_KEY:
        raise HTTPException(
            status_code=500,
            detail="Anthropic API key not configured. Please set ANTHROPIC_API_KEY in environment.",
        )
    return AnthropicChatModel()


def get_orchestrator(
    gateway: PersistenceGateway = Depends(get_gateway),
    model: ChatModel = Depends(get_chat_model),
) -> ChatOrchestrator:
    return ChatOrchestrator(gateway, model=model)


@router.post("/chat", response_model=ChatReply)
async def chat(
    request: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ChatReply:
    """
    Chat with the filing assistant and return the full reply.

    Tool calls run before the reply is returned; the exchange is persisted
    to the conversation log.
    """
    check_chat_rate_limit(request.user_id)

    try:
        reply = await orchestrator.respond(request.user_id, request.message, request.history())
    except FilingEngineError as e:
        logger.error(f"Chat failed for user {request.user_id}: {e.code}: {e}")
        raise to_http_exception(e) from e

    return ChatReply(reply=reply)


@router.post("/chat/stream")
async def chat_stream(
    request: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """
    Chat with the filing assistant using Server-Sent Events.

    Frames: data: {"text": ...} per delta, then data: [DONE]; on failure a
    single data: {"error": ...} frame ends the stream.
    """
    check_chat_rate_limit(request.user_id)

    config = ChatStreamConfig(
        user_id=request.user_id,
        message=request.message,
        conversation_history=request.history(),
    )
    return StreamingResponse(
        generate_chat_stream(config, orchestrator),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/chat/history/{user_id}", response_model=List[ConversationTurn])
async def chat_history(
    user_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
) -> List[ConversationTurn]:
    """Visible conversation for a user, oldest first."""
    try:
        return await ConversationStore(gateway).list_turns(user_id)
    except FilingEngineError as e:
        raise to_http_exception(e) from e
