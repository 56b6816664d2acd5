"""
Model Client
============

Multi-turn structured function calling, behind a small interface so the
runtime does not depend on one provider:

- ModelClient.start_conversation(system, tools, ...) opens a conversation
- ModelConversation.send_message(text) sends a user turn
- ModelConversation.send_function_responses([...]) answers a batch of calls

Each turn comes back as a ModelTurn: free text plus zero or more
FunctionCall requests. Provider failures raise ModelClientError.

AnthropicModelClient implements this over the Anthropic Messages API.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from anthropic import APIError, AsyncAnthropic


class ModelClientError(Exception):
    """The model service failed (network, quota, malformed response)."""


@dataclass
class FunctionCall:
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class FunctionResponse:
    call_id: str
    name: str
    response: dict[str, Any]
    is_error: bool = False


@dataclass
class ModelTurn:
    text: str = ""
    function_calls: list[FunctionCall] = field(default_factory=list)

    @property
    def has_function_calls(self) -> bool:
        return bool(self.function_calls)


class ModelConversation(ABC):
    """One ongoing exchange; history is kept by the conversation."""

    @abstractmethod
    async def send_message(self, text: str) -> ModelTurn: ...

    @abstractmethod
    async def send_function_responses(self, responses: list[FunctionResponse]) -> ModelTurn: ...


class ModelClient(ABC):
    """Factory for conversations with a generative model."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether a credential is available to call the model."""

    @abstractmethod
    def start_conversation(
        self,
        system_instruction: str,
        tools: list[dict[str, Any]],
        model: Optional[str] = None,
        temperature: float = 0.2,
    ) -> ModelConversation: ...


# =============================================================================
# Anthropic
# =============================================================================

def to_anthropic_tools(declarations: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert registry declarations to Messages API tool definitions."""
    return [
        {
            "name": d["name"],
            "description": d.get("description", ""),
            "input_schema": d.get("parameters") or {"type": "object", "properties": {}},
        }
        for d in declarations
    ]


class AnthropicConversation(ModelConversation):
    def __init__(
        self,
        client: AsyncAnthropic,
        model: str,
        system_instruction: str,
        tools: list[dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ):
        self._client = client
        self.model = model
        self.system_instruction = system_instruction
        self.tools = tools
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.messages: list[dict[str, Any]] = []

    async def send_message(self, text: str) -> ModelTurn:
        self.messages.append({"role": "user", "content": text})
        return await self._complete()

    async def send_function_responses(self, responses: list[FunctionResponse]) -> ModelTurn:
        self.messages.append({
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": r.call_id,
                    "content": json.dumps(r.response, default=str),
                    "is_error": r.is_error,
                }
                for r in responses
            ],
        })
        return await self._complete()

    async def _complete(self) -> ModelTurn:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": self.system_instruction,
            "messages": self.messages,
            "temperature": self.temperature,
        }
        if self.tools:
            kwargs["tools"] = self.tools

        try:
            response = await self._client.messages.create(**kwargs)
        except APIError as e:
            raise ModelClientError(f"Model request failed: {e}") from e

        texts: list[str] = []
        calls: list[FunctionCall] = []
        assistant_content: list[dict[str, Any]] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
                assistant_content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                args = block.input if isinstance(block.input, dict) else {}
                calls.append(FunctionCall(id=block.id, name=block.name, args=args))
                assistant_content.append({
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": args,
                })

        if not assistant_content:
            raise ModelClientError(f"Model returned an empty turn (stop_reason={response.stop_reason})")

        self.messages.append({"role": "assistant", "content": assistant_content})
        return ModelTurn(text="\n".join(texts).strip(), function_calls=calls)


class AnthropicModelClient(ModelClient):
    """
    ModelClient over ``anthropic.AsyncAnthropic``.

    Args:
        api_key: Anthropic API key (None leaves the client unconfigured)
        default_model: Model used when a run does not name one
        max_tokens: Output cap per turn
        timeout: Per-request bound in seconds
    """

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str,
        max_tokens: int = 4096,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client: Optional[AsyncAnthropic] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            if self.timeout:
                self._client = AsyncAnthropic(api_key=self.api_key, timeout=self.timeout)
            else:
                self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    def start_conversation(
        self,
        system_instruction: str,
        tools: list[dict[str, Any]],
        model: Optional[str] = None,
        temperature: float = 0.2,
    ) -> ModelConversation:
        return AnthropicConversation(
            self._get_client(),
            model=model or self.default_model,
            system_instruction=system_instruction,
            tools=to_anthropic_tools(tools),
            temperature=temperature,
            max_tokens=self.max_tokens,
        )
