"""Tests for SSE framing around the chat orchestrator."""

import json

import pytest

from app.core.chat_orchestrator import ChatOrchestrator
from app.core.chat_stream import (
    DONE_FRAME,
    GENERIC_CHAT_ERROR,
    TIMEOUT_CHAT_ERROR,
    ChatStreamConfig,
    error_frame,
    generate_chat_stream,
    text_frame,
    user_facing_error,
)
from app.core.exceptions import UpstreamTimeout
from tests.conftest import USER_ID
from tests.fakes.fake_chat_model import FailingChatModel, FakeChatModel


async def _frames(gateway, model, message="Hi") -> list[str]:
    orchestrator = ChatOrchestrator(gateway, model=model, max_rounds=3, chunk_timeout=1.0)
    config = ChatStreamConfig(user_id=USER_ID, message=message)
    return [frame async for frame in generate_chat_stream(config, orchestrator)]


def test_text_frame_is_json():
    frame = text_frame('say "hi"\n')
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {"text": 'say "hi"\n'}


def test_error_frame():
    assert json.loads(error_frame("nope")[len("data: "):]) == {"error": "nope"}


def test_user_facing_error_hides_details():
    assert user_facing_error(RuntimeError("db password wrong")) == GENERIC_CHAT_ERROR
    assert user_facing_error(UpstreamTimeout("model", 30)) == TIMEOUT_CHAT_ERROR


@pytest.mark.asyncio
async def test_clean_stream_ends_with_done(gateway):
    frames = await _frames(gateway, FakeChatModel([["Hel", "lo"]]))

    assert frames == [text_frame("Hel"), text_frame("lo"), DONE_FRAME]


@pytest.mark.asyncio
async def test_failure_sends_error_without_done(gateway):
    frames = await _frames(gateway, FailingChatModel(RuntimeError("boom"), prefix="Part"))

    assert frames[0] == text_frame("Part")
    assert frames[-1] == error_frame(GENERIC_CHAT_ERROR)
    assert DONE_FRAME not in frames
    assert "boom" not in "".join(frames)
