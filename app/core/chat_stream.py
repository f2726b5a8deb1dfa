"""Chat streaming transport: SSE framing around the orchestrator.

Frames:
  data: {"text": "<delta>"}\\n\\n   one per narration delta, in order
  data: [DONE]\\n\\n                 terminal sentinel after a clean finish
  data: {"error": "<message>"}\\n\\n  terminal on failure; no [DONE] follows
"""

import json
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Any

from app.core.chat_orchestrator import ChatOrchestrator
from app.core.exceptions import UpstreamTimeout
from app.core.logging import get_logger

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"
DONE_FRAME = f"data: {DONE_SENTINEL}\n\n"

GENERIC_CHAT_ERROR = "Sorry, something went wrong while generating a response. Please try again."
TIMEOUT_CHAT_ERROR = "The assistant took too long to respond. Please try again."


@dataclass
class ChatStreamConfig:
    """Explicit inputs for a chat streaming session."""

    user_id: str
    message: str
    conversation_history: list[dict[str, str]] | None = field(default=None)


def _sse_event(data: dict[str, Any]) -> str:
    """Format a dict as an SSE data line."""
    return f"data: {json.dumps(data)}\n\n"


def text_frame(delta: str) -> str:
    return _sse_event({"text": delta})


def error_frame(message: str) -> str:
    return _sse_event({"error": message})


def user_facing_error(exc: Exception) -> str:
    """Generic message for the client; details stay in the logs."""
    if isinstance(exc, UpstreamTimeout):
        return TIMEOUT_CHAT_ERROR
    return GENERIC_CHAT_ERROR


async def generate_chat_stream(
    config: ChatStreamConfig,
    orchestrator: ChatOrchestrator,
) -> AsyncGenerator[str, None]:
    """Generate SSE frames for one chat message.

    Yields text frames → [DONE], or text frames → error frame.
    """
    try:
        async for delta in orchestrator.stream(
            config.user_id, config.message, config.conversation_history
        ):
            if delta:
                yield text_frame(delta)
        yield DONE_FRAME

    except Exception as e:
        logger.error(f"Error in chat stream for user {config.user_id}: {e}", exc_info=True)
        yield error_frame(user_facing_error(e))
