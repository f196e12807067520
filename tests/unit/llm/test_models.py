"""
Tests for LLM request/response models.
"""

import pytest
from pydantic import ValidationError

from pgchat.llm.models import LLMMessage, LLMRequest, LLMResponse, LLMToolCall, LLMUsage


class TestLLMMessage:
    def test_valid_message(self):
        msg = LLMMessage(role="user", content="Hello!")
        assert msg.role == "user"
        assert msg.content == "Hello!"

    def test_invalid_role(self):
        with pytest.raises(ValidationError):
            LLMMessage(role="invalid", content="Test")

    def test_user_message_requires_content(self):
        with pytest.raises(ValidationError, match="user messages require content"):
            LLMMessage(role="user")

    def test_tool_message_requires_call_id(self):
        with pytest.raises(ValidationError, match="tool_call_id"):
            LLMMessage(role="tool", content="[]")

    def test_only_assistant_carries_tool_calls(self):
        call = LLMToolCall(id="call_1", name="getIndexes")
        assert LLMMessage(role="assistant", tool_calls=[call]).content is None
        with pytest.raises(ValidationError, match="only assistant"):
            LLMMessage(role="user", content="hi", tool_calls=[call])


class TestLLMToolCall:
    def test_empty_arguments_parse_to_empty_dict(self):
        assert LLMToolCall(id="1", name="getIndexes", arguments="").parsed_arguments() == {}

    def test_malformed_arguments_raise(self):
        with pytest.raises(ValueError, match="Malformed tool arguments"):
            LLMToolCall(id="1", name="getIndexes", arguments="{oops").parsed_arguments()

    def test_non_object_arguments_raise(self):
        with pytest.raises(ValueError, match="JSON object"):
            LLMToolCall(id="1", name="getIndexes", arguments="[1, 2]").parsed_arguments()


class TestLLMRequestResponse:
    def test_request_requires_a_message(self):
        with pytest.raises(ValidationError):
            LLMRequest(messages=[])

    def test_has_tool_calls(self):
        usage = LLMUsage(prompt_tokens=1, completion_tokens=1, total_tokens=2)
        text = LLMResponse(model="m", usage=usage, finish_reason="stop", provider="p")
        calls = LLMResponse(
            model="m",
            usage=usage,
            finish_reason="tool_calls",
            provider="p",
            tool_calls=[LLMToolCall(id="1", name="getIndexes")],
        )

        assert text.has_tool_calls is False
        assert calls.has_tool_calls is True
