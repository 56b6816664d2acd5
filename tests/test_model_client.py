"""
Tests for model_client.py - Anthropic conversation mapping.
"""

import json
from types import SimpleNamespace

import httpx
import pytest
from anthropic import APIConnectionError

from adforge.model_client import (
    AnthropicConversation,
    AnthropicModelClient,
    FunctionResponse,
    ModelClientError,
    to_anthropic_tools,
)


def text_block(text):
    return SimpleNamespace(type="text", text=text)


def tool_block(block_id, name, args):
    return SimpleNamespace(type="tool_use", id=block_id, name=name, input=args)


class FakeMessages:
    """Stands in for ``AsyncAnthropic().messages``."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    async def create(self, **kwargs):
        # Snapshot: the conversation keeps appending to the same list
        self.requests.append({**kwargs, "messages": list(kwargs["messages"])})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def conversation(responses, tools=None):
    messages = FakeMessages(responses)
    client = SimpleNamespace(messages=messages)
    conv = AnthropicConversation(
        client, model="claude-test", system_instruction="You are a test.",
        tools=tools or [], temperature=0.2, max_tokens=256,
    )
    return conv, messages


def response(*blocks, stop_reason="end_turn"):
    return SimpleNamespace(content=list(blocks), stop_reason=stop_reason)


class TestToolConversion:
    def test_declarations_become_input_schemas(self):
        declarations = [
            {"name": "get_campaigns", "description": "List", "parameters": {"type": "object", "properties": {"a": {}}}},
            {"name": "query_dashboard_summary"},
        ]

        assert to_anthropic_tools(declarations) == [
            {"name": "get_campaigns", "description": "List", "input_schema": {"type": "object", "properties": {"a": {}}}},
            {"name": "query_dashboard_summary", "description": "", "input_schema": {"type": "object", "properties": {}}},
        ]


class TestAnthropicConversation:
    @pytest.mark.asyncio
    async def test_text_turn(self):
        conv, messages = conversation([response(text_block("All good."))])

        turn = await conv.send_message("How are we doing?")

        assert turn.text == "All good."
        assert not turn.has_function_calls
        request = messages.requests[0]
        assert request["system"] == "You are a test."
        assert request["model"] == "claude-test"
        assert "tools" not in request
        assert conv.messages[-1] == {"role": "assistant", "content": [{"type": "text", "text": "All good."}]}

    @pytest.mark.asyncio
    async def test_tool_calls_and_responses(self):
        tools = to_anthropic_tools([{"name": "get_campaigns", "parameters": {"type": "object", "properties": {}}}])
        conv, messages = conversation([
            response(
                text_block("Checking."),
                tool_block("toolu_1", "get_campaigns", {"accountId": "1"}),
                tool_block("toolu_2", "get_campaigns", {"accountId": "2"}),
                stop_reason="tool_use",
            ),
            response(text_block("Two accounts checked.")),
        ], tools=tools)

        turn = await conv.send_message("Check accounts")

        assert turn.text == "Checking."
        assert [(c.id, c.args) for c in turn.function_calls] == [
            ("toolu_1", {"accountId": "1"}),
            ("toolu_2", {"accountId": "2"}),
        ]

        final = await conv.send_function_responses([
            FunctionResponse(call_id="toolu_1", name="get_campaigns", response={"success": True, "data": []}),
            FunctionResponse(call_id="toolu_2", name="get_campaigns", response={"success": False}, is_error=True),
        ])

        assert final.text == "Two accounts checked."
        second = messages.requests[1]
        assert second["tools"] == tools
        results = second["messages"][-1]["content"]
        assert [r["tool_use_id"] for r in results] == ["toolu_1", "toolu_2"]
        assert json.loads(results[0]["content"]) == {"success": True, "data": []}
        assert results[1]["is_error"] is True
        # user, assistant (calls), user (results)
        assert [m["role"] for m in second["messages"]] == ["user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self):
        error = APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        conv, _ = conversation([error])

        with pytest.raises(ModelClientError, match="Model request failed"):
            await conv.send_message("hi")

    @pytest.mark.asyncio
    async def test_empty_turn_is_an_error(self):
        conv, _ = conversation([response(stop_reason="max_tokens")])

        with pytest.raises(ModelClientError, match="empty turn"):
            await conv.send_message("hi")


class TestAnthropicModelClient:
    def test_configured_only_with_key(self):
        assert AnthropicModelClient("sk-test", "claude-test").is_configured
        assert not AnthropicModelClient(None, "claude-test").is_configured
        assert not AnthropicModelClient("", "claude-test").is_configured

    def test_start_conversation_uses_default_model(self):
        client = AnthropicModelClient("sk-test", "claude-test", max_tokens=512, timeout=30)

        conv = client.start_conversation("system", [{"name": "t", "description": "d", "parameters": {}}])

        assert conv.model == "claude-test"
        assert conv.max_tokens == 512
        assert conv.tools == [{"name": "t", "description": "d", "input_schema": {"type": "object", "properties": {}}}]
        assert client.start_conversation("system", [], model="claude-other").model == "claude-other"
