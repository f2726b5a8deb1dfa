"""Tool-calling chat orchestrator.

Drives one user message through the model/tool loop:

  Drafting → {Narrating, Invoking} → (next round) → Done

Two transcripts are kept apart. The model transcript is an immutable tuple of
Messages API turns that grows with tool_use / tool_result scaffolding each
round. The visible conversation only ever receives the user's text and the
concatenated narration.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Iterable, Mapping

from app.chains.chat_tools import execute_tool, get_tool_definitions
from app.core.chat_context import load_filing_snapshot, render_context_summary
from app.core.chat_prompts import build_system_prompt
from app.core.config import get_settings
from app.core.exceptions import EmptyMessage, ToolLoopExceeded, UpstreamTimeout
from app.core.llm import AnthropicChatModel, ChatModel, ModelReply, TextDelta
from app.core.logging import get_logger, log_with_context
from app.core.schemas_filing import ChatRole
from app.db.conversations import ConversationStore
from app.db.gateway import PersistenceGateway

logger = get_logger(__name__)

# Narration separator between rounds that both produced text
ROUND_SEPARATOR = "\n\n"

FALLBACK_NARRATION = "I apologize, but I couldn't generate a response. Please try again."

Transcript = tuple[dict[str, Any], ...]


def build_transcript(history: Iterable[Mapping[str, Any]], message: str) -> Transcript:
    """Role-tagged prior turns plus the new user message.

    Turns with an unknown role or empty text are dropped.
    """
    roles = {r.value for r in ChatRole}
    turns = tuple(
        {"role": str(turn.get("role")), "content": str(turn.get("content"))}
        for turn in history
        if turn.get("role") in roles and str(turn.get("content") or "").strip()
    )
    return turns + ({"role": ChatRole.USER.value, "content": message},)


def _tool_round(reply: ModelReply, results: list[dict[str, Any]]) -> Transcript:
    return (
        {"role": ChatRole.ASSISTANT.value, "content": list(reply.blocks)},
        {"role": ChatRole.USER.value, "content": results},
    )


class ChatOrchestrator:
    """Runs the model/tool loop for one user and persists the exchange."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        model: ChatModel | None = None,
        conversations: ConversationStore | None = None,
        max_rounds: int | None = None,
        chunk_timeout: float | None = None,
    ):
        settings = get_settings()
        self.gateway = gateway
        self.model = model or AnthropicChatModel()
        self.conversations = conversations or ConversationStore(gateway)
        self.max_rounds = max_rounds or settings.MAX_TOOL_ROUNDS
        self.chunk_timeout = chunk_timeout or settings.UPSTREAM_TIMEOUT_SECONDS

    async def _bounded(
        self, source: AsyncIterator[TextDelta | ModelReply]
    ) -> AsyncIterator[TextDelta | ModelReply]:
        """Re-yield a model stream, bounding the wait for each item."""
        iterator = source.__aiter__()
        try:
            while True:
                try:
                    item = await asyncio.wait_for(iterator.__anext__(), timeout=self.chunk_timeout)
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError:
                    raise UpstreamTimeout("model", self.chunk_timeout) from None
                yield item
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _system_prompt(self, user_id: str) -> str:
        snapshot = await load_filing_snapshot(self.gateway, user_id)
        return build_system_prompt(render_context_summary(snapshot))

    async def stream(
        self,
        user_id: str,
        message: str,
        history: Iterable[Mapping[str, Any]] | None = None,
    ) -> AsyncIterator[str]:
        """
        Run the loop for one message, yielding narration deltas as they arrive.

        The exchange (one user turn, one assistant turn) is persisted only
        after the loop finishes; a failure part-way persists nothing.

        Args:
            user_id: Acting user
            message: New user message
            history: Prior visible turns ({role, content}); loaded from the
                conversation store when omitted

        Raises:
            ToolLoopExceeded: The model was still calling tools after max_rounds
            EmptyMessage: The message is blank; raised before any model or store call
            UpstreamTimeout: A model chunk or store call exceeded its bound
        """
        message = message.strip()
        if not message:
            raise EmptyMessage()

        if history is None:
            history = [
                {"role": t.role.value, "content": t.text}
                for t in await self.conversations.list_turns(user_id)
            ]

        transcript = build_transcript(history, message)
        tools = get_tool_definitions()
        narration_parts: list[str] = []

        for round_number in range(1, self.max_rounds + 1):
            # Re-read every round so the context reflects this loop's own saves
            system = await self._system_prompt(user_id)

            round_text = ""
            reply: ModelReply | None = None
            async for item in self._bounded(self.model.stream_reply(system, list(transcript), tools)):
                if isinstance(item, TextDelta):
                    if not round_text and narration_parts:
                        yield ROUND_SEPARATOR
                    round_text += item.text
                    yield item.text
                else:
                    reply = item

            if reply is None:
                raise RuntimeError("Model stream ended without a final reply")

            # Replies that arrive without deltas still count as narration
            if not round_text and reply.text:
                if narration_parts:
                    yield ROUND_SEPARATOR
                round_text = reply.text
                yield round_text

            if round_text:
                narration_parts.append(round_text)

            invocations = reply.tool_invocations
            log_with_context(
                logger,
                logging.INFO,
                f"Chat round {round_number}: {len(invocations)} tool call(s)",
                user_id=user_id,
                round=round_number,
                stop_reason=reply.stop_reason,
                tools=[inv.name for inv in invocations],
            )

            if not invocations:
                break

            # Strictly sequential, in emitted order
            results = []
            for invocation in invocations:
                result = await execute_tool(
                    self.gateway, user_id, invocation.name, invocation.input
                )
                results.append(
                    {"type": "tool_result", "tool_use_id": invocation.id, "content": result}
                )

            transcript = transcript + _tool_round(reply, results)
        else:
            logger.error(f"Tool loop exceeded {self.max_rounds} rounds for user {user_id}")
            raise ToolLoopExceeded(self.max_rounds)

        narration = ROUND_SEPARATOR.join(narration_parts)
        if not narration.strip():
            narration = FALLBACK_NARRATION
            yield narration

        await self.conversations.append_exchange(user_id, message, narration)

    async def respond(
        self,
        user_id: str,
        message: str,
        history: Iterable[Mapping[str, Any]] | None = None,
    ) -> str:
        """Non-streaming variant: run the loop and return the full narration."""
        parts = [delta async for delta in self.stream(user_id, message, history)]
        return "".join(parts)
