"""Tests for LLM JSON helpers and the Anthropic stream adapter."""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from pydantic import BaseModel

from app.core.llm import (
    AnthropicChatModel,
    ModelReply,
    TextDelta,
    extract_first_json_object,
    parse_llm_json,
)


class TestExtractFirstJsonObject:
    def test_plain_object(self):
        assert extract_first_json_object('{"a": 1}') == {"a": 1}

    def test_leading_and_trailing_prose(self):
        assert extract_first_json_object('Sure! {"a": {"b": 2}} Hope that helps.') == {"a": {"b": 2}}

    def test_braces_inside_strings(self):
        raw = 'Result: {"title": "Knee {left}", "note": "ends with }"} done'
        assert extract_first_json_object(raw) == {"title": "Knee {left}", "note": "ends with }"}

    def test_escaped_quote_in_string(self):
        raw = r'{"title": "the \"big\" one }"}'
        assert extract_first_json_object(raw)["title"] == 'the "big" one }'

    def test_code_fence(self):
        assert extract_first_json_object('```json\n{"x": true}\n```') == {"x": True}

    def test_only_first_object(self):
        assert extract_first_json_object('{"a": 1} {"b": 2}') == {"a": 1}

    def test_no_object(self):
        with pytest.raises(ValueError):
            extract_first_json_object("No JSON at all")

    def test_unterminated_object(self):
        with pytest.raises(ValueError):
            extract_first_json_object('{"a": 1')

    def test_invalid_json(self):
        with pytest.raises(json.JSONDecodeError):
            extract_first_json_object("{'single': 'quotes'}")


class _Rating(BaseModel):
    rating: int


def test_parse_llm_json_validates():
    assert parse_llm_json('Here: {"rating": 70}', _Rating).rating == 70


def test_model_reply_splits_text_and_tools():
    reply = ModelReply(
        blocks=(
            {"type": "text", "text": "Saving."},
            {"type": "tool_use", "id": "t1", "name": "save_personal_info", "input": {"first_name": "A"}},
        ),
        stop_reason="tool_use",
    )
    assert reply.text == "Saving."
    assert [inv.name for inv in reply.tool_invocations] == ["save_personal_info"]


# ──────────────────────────────────────────────────────────────────────
# AnthropicChatModel over a mocked SDK stream
# ──────────────────────────────────────────────────────────────────────


class _FakeStream:
    def __init__(self, events, final_message):
        self._events = events
        self._final = final_message

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self._events:
            yield event

    async def get_final_message(self):
        return self._final


@pytest.mark.asyncio
async def test_anthropic_model_yields_deltas_then_reply():
    events = [
        SimpleNamespace(type="message_start"),
        SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(text="Hel")),
        SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(text="lo")),
        SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(partial_json='{"a"')),
    ]
    final = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Hello"),
            SimpleNamespace(type="tool_use", id="t1", name="save_va_disability_info", input={"current_va_rating": 50}),
        ],
        stop_reason="tool_use",
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )
    client = MagicMock()
    client.messages.stream = MagicMock(return_value=_FakeStream(events, final))

    model = AnthropicChatModel(client=client, model="test-model", max_tokens=100)
    items = [item async for item in model.stream_reply("system", [], [])]

    assert items[:2] == [TextDelta("Hel"), TextDelta("lo")]
    reply = items[-1]
    assert isinstance(reply, ModelReply)
    assert reply.tool_invocations[0].input == {"current_va_rating": 50}
    assert reply.usage == {"input_tokens": 10, "output_tokens": 5}
    assert client.messages.stream.call_args.kwargs["model"] == "test-model"
