"""Client side of the chat stream: rebuilds narration from SSE frames.

Uses httpx for the streaming request. Bytes are decoded incrementally so a
multi-byte character split across network chunks is never mangled, and
frames are only parsed once their blank-line terminator has arrived.
"""

import asyncio
import codecs
import json
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from app.core.chat_stream import DONE_SENTINEL
from app.core.exceptions import StreamInterrupted
from app.core.logging import get_logger
from app.core.schemas_filing import ChatRole

logger = get_logger(__name__)

CHAT_STREAM_PATH = "/v1/chat/stream"

APOLOGY_TEXT = "I'm sorry, I encountered an error. Please try again."


@dataclass
class VisibleTurn:
    """One turn of the visible conversation; assistant turns fill in place."""

    role: ChatRole
    content: str = ""
    complete: bool = False
    error: str | None = None


class StreamAccumulator:
    """Incremental SSE parser that appends text deltas to one placeholder."""

    def __init__(self, placeholder: VisibleTurn | None = None):
        self.placeholder = placeholder or VisibleTurn(role=ChatRole.ASSISTANT)
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""
        self.done = False
        self.error: str | None = None

    @property
    def finished(self) -> bool:
        return self.done or self.error is not None

    def feed(self, chunk: bytes) -> list[str]:
        """Consume raw bytes; return the text deltas completed by this chunk."""
        if self.finished:
            return []
        self._buffer += self._decoder.decode(chunk).replace("\r\n", "\n")

        deltas = []
        while "\n\n" in self._buffer and not self.finished:
            frame, self._buffer = self._buffer.split("\n\n", 1)
            delta = self._handle_frame(frame)
            if delta:
                deltas.append(delta)
        return deltas

    def _handle_frame(self, frame: str) -> str | None:
        data_lines = [
            line[len("data:"):].lstrip(" ") for line in frame.split("\n") if line.startswith("data:")
        ]
        if not data_lines:
            return None
        data = "\n".join(data_lines)

        if data == DONE_SENTINEL:
            self.done = True
            return None

        try:
            event: Any = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed stream frame: {data[:80]}")
            return None
        if not isinstance(event, dict):
            return None

        if event.get("error"):
            self.fail(str(event["error"]))
            return None

        text = event.get("text")
        if isinstance(text, str) and text:
            self.placeholder.content += text
            return text
        return None

    def fail(self, message: str) -> None:
        if self.error is None:
            self.error = message

    def finish(self) -> VisibleTurn:
        """Close the stream: drop any partial frame and settle the placeholder."""
        self._decoder.reset()
        self._buffer = ""

        if not self.done and self.error is None:
            self.fail("Stream closed before completion")

        if self.error is not None:
            self.placeholder.error = self.error
            if not self.placeholder.content:
                self.placeholder.content = APOLOGY_TEXT
        else:
            self.placeholder.complete = True
        return self.placeholder


async def stream_chat(
    client: httpx.AsyncClient,
    user_id: str,
    message: str,
    history: list[dict[str, str]] | None = None,
    placeholder: VisibleTurn | None = None,
    on_text: Callable[[str, VisibleTurn], None] | None = None,
    on_error: Callable[[StreamInterrupted], None] | None = None,
) -> VisibleTurn:
    """
    POST a chat message and accumulate the streamed reply.

    Args:
        client: httpx client whose base_url points at the API
        user_id: Acting user
        message: New user message
        history: Prior visible turns ({role, content})
        placeholder: Assistant turn to fill (a new one when omitted)
        on_text: Called after every delta with the delta and the placeholder
        on_error: Called once on an error frame, transport failure, or a
            close without the completion sentinel

    Returns:
        The settled assistant turn
    """
    accumulator = StreamAccumulator(placeholder)
    body = {"userId": user_id, "message": message, "conversationHistory": history or []}

    try:
        async with client.stream("POST", CHAT_STREAM_PATH, json=body) as response:
            if response.status_code != 200:
                await response.aread()
                accumulator.fail(f"HTTP {response.status_code}")
            else:
                async for chunk in response.aiter_bytes():
                    for delta in accumulator.feed(chunk):
                        if on_text is not None:
                            on_text(delta, accumulator.placeholder)
                    if accumulator.finished:
                        break
    except httpx.HTTPError as e:
        logger.warning(f"Chat stream transport error for user {user_id}: {e}")
        accumulator.fail(f"Transport error: {e}")

    turn = accumulator.finish()
    if turn.error is not None and on_error is not None:
        on_error(StreamInterrupted(turn.error))
    return turn


@dataclass
class ChatSession:
    """Visible conversation for one user, with at most one reply in flight.

    Sending a new message abandons the previous request: its task is
    cancelled but not awaited, and the new message gets a fresh placeholder.
    """

    client: httpx.AsyncClient
    user_id: str
    turns: list[VisibleTurn] = field(default_factory=list)
    on_error: Callable[[StreamInterrupted], None] | None = None
    _task: asyncio.Task | None = field(default=None, init=False, repr=False)

    def history(self) -> list[dict[str, str]]:
        return [
            {"role": turn.role.value, "content": turn.content}
            for turn in self.turns
            if turn.complete and turn.content
        ]

    def send(self, message: str) -> asyncio.Task:
        """Start streaming a reply to message; returns the in-flight task."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

        history = self.history()
        self.turns.append(VisibleTurn(role=ChatRole.USER, content=message, complete=True))
        placeholder = VisibleTurn(role=ChatRole.ASSISTANT)
        self.turns.append(placeholder)

        self._task = asyncio.create_task(
            stream_chat(
                self.client,
                self.user_id,
                message,
                history=history,
                placeholder=placeholder,
                on_error=self.on_error,
            )
        )
        return self._task
