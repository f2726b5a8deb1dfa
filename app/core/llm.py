"""LLM client utilities for the Anthropic Messages API."""

import json
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, AsyncIterator, Protocol, TypeVar

from anthropic import AsyncAnthropic
from pydantic import BaseModel

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


# ============================================================================
# Model reply types
# ============================================================================


@dataclass(frozen=True)
class TextDelta:
    """A fragment of narration as it streams from the model."""
    text: str


@dataclass(frozen=True)
class ToolInvocation:
    """One tool_use block from a model reply."""
    id: str
    name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class ModelReply:
    """A complete model reply: ordered content blocks plus stop reason.

    Blocks are plain dicts in Messages API shape so they can be replayed
    verbatim as the assistant turn of the next request.
    """
    blocks: tuple[dict[str, Any], ...]
    stop_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return "".join(b.get("text", "") for b in self.blocks if b.get("type") == "text")

    @property
    def tool_invocations(self) -> list[ToolInvocation]:
        return [
            ToolInvocation(id=b["id"], name=b["name"], input=dict(b.get("input") or {}))
            for b in self.blocks
            if b.get("type") == "tool_use"
        ]


class ChatModel(Protocol):
    """Anything that can run one streamed model round.

    stream_reply yields zero or more TextDelta items followed by exactly one
    ModelReply.
    """

    def stream_reply(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[TextDelta | ModelReply]: ...


def _block_to_param(block: Any) -> dict[str, Any] | None:
    """Convert an SDK content block into a replayable request block."""
    block_type = getattr(block, "type", None)
    if block_type == "text":
        return {"type": "text", "text": block.text}
    if block_type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return None


@lru_cache(maxsize=1)
def get_anthropic_client() -> AsyncAnthropic:
    """Shared async Anthropic client (cached singleton)."""
    settings = get_settings()
    if not settings.ANTHROPIC_API_KEY:
        raise ValueError("ANTHROPIC_API_KEY not configured")
    return AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)


class AnthropicChatModel:
    """ChatModel backed by AsyncAnthropic messages.stream."""

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ):
        settings = get_settings()
        self._client = client
        self.model = model or settings.CHAT_MODEL
        self.max_tokens = max_tokens or settings.CHAT_MAX_TOKENS

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = get_anthropic_client()
        return self._client

    async def stream_reply(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[TextDelta | ModelReply]:
        async with self.client.messages.stream(
            model=self.model,
            max_tokens=self.max_tokens,
            system=system,
            messages=messages,
            tools=tools,
        ) as stream:
            async for event in stream:
                if getattr(event, "type", None) == "content_block_delta":
                    text = getattr(event.delta, "text", None)
                    if text:
                        yield TextDelta(text)

            final_message = await stream.get_final_message()

        usage = {}
        if getattr(final_message, "usage", None) is not None:
            usage = {
                "input_tokens": getattr(final_message.usage, "input_tokens", 0) or 0,
                "output_tokens": getattr(final_message.usage, "output_tokens", 0) or 0,
            }

        blocks = tuple(
            param for param in (_block_to_param(b) for b in final_message.content) if param
        )
        yield ModelReply(blocks=blocks, stop_reason=final_message.stop_reason, usage=usage)


# ============================================================================
# JSON helpers
# ============================================================================


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()
    return cleaned


def _balanced_object_end(text: str, start: int) -> int | None:
    """Index one past the brace closing the object opened at text[start]."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_first_json_object(raw_output: str) -> dict[str, Any]:
    """
    Locate and parse the first top-level JSON object in model output.

    Leading prose, trailing prose and code fences are tolerated. Braces
    inside JSON strings do not affect matching.

    Raises:
        ValueError: If no JSON object can be found
        json.JSONDecodeError: If the first balanced object is not valid JSON
    """
    text = _strip_llm_fences(raw_output)
    start = text.find("{")
    if start == -1:
        raise ValueError("No JSON object found in model output")

    end = _balanced_object_end(text, start)
    if end is None:
        raise ValueError("Unterminated JSON object in model output")

    parsed = json.loads(text[start:end])
    if not isinstance(parsed, dict):
        raise ValueError("Model output JSON is not an object")
    return parsed


def parse_llm_json(raw_output: str, model: type[T]) -> T:
    """
    Parse the first JSON object in LLM output and validate it.

    Raises:
        ValueError / json.JSONDecodeError: If no valid object is found
        pydantic.ValidationError: If the object doesn't match the schema
    """
    return model.model_validate(extract_first_json_object(raw_output))
