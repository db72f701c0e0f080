"""Chat model client and message types.

The engine talks to the language model through one call:

    invoke(messages, tools=None) -> ModelResponse(text, tool_calls)

``OpenAIChatModel`` implements it against any OpenAI-compatible chat
completions endpoint. Tests substitute a scripted model with the same shape.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from openai import APIError, AsyncOpenAI

from augur.errors import ModelInvocationError
from augur.utils.resilience import with_timeout

if TYPE_CHECKING:
    from augur.config import Settings

log = structlog.get_logger()


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    ``parse_error`` is set when the model emitted arguments that are not a
    JSON object; ``arguments`` is then empty.
    """

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    parse_error: str | None = None


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str, tool_calls: tuple[ToolCall, ...] = ()) -> Message:
        return cls(Role.ASSISTANT, content, tool_calls=tool_calls)

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> Message:
        return cls(Role.TOOL, content, tool_call_id=tool_call_id)


@dataclass(frozen=True)
class ToolSpec:
    """A tool as presented to the model: name, description and JSON schema."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(frozen=True)
class ModelResponse:
    text: str
    tool_calls: tuple[ToolCall, ...] = ()


class ChatModel(Protocol):
    async def invoke(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
    ) -> ModelResponse: ...


def _to_openai_message(message: Message) -> dict[str, Any]:
    payload: dict[str, Any] = {"role": str(message.role), "content": message.content}
    if message.role is Role.TOOL:
        payload["tool_call_id"] = message.tool_call_id
    if message.tool_calls:
        payload["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for call in message.tool_calls
        ]
    return payload


def _to_openai_tool(spec: ToolSpec) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": spec.parameters,
        },
    }


def parse_tool_arguments(raw: str | None) -> tuple[dict[str, Any], str | None]:
    """Decode a tool call's JSON arguments. Returns (arguments, error)."""
    if not raw:
        return {}, None
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as e:
        return {}, f"arguments are not valid JSON: {e.msg}"
    if not isinstance(decoded, dict):
        return {}, "arguments must be a JSON object"
    return decoded, None


class OpenAIChatModel:
    """Chat completions with optional tool binding."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        timeout: float = 60.0,
    ) -> None:
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    @classmethod
    def from_settings(
        cls, settings: Settings, *, temperature: float | None = None
    ) -> OpenAIChatModel:
        client = AsyncOpenAI(
            api_key=settings.openai_api_key.get_secret_value() or None,
            base_url=settings.openai_base_url,
        )
        return cls(
            client,
            model=settings.chat_model,
            temperature=settings.chat_temperature if temperature is None else temperature,
            max_tokens=settings.chat_max_tokens,
            timeout=settings.chat_timeout,
        )

    def with_temperature(self, temperature: float) -> OpenAIChatModel:
        """Same client and model at a different temperature."""
        return OpenAIChatModel(
            self._client,
            model=self.model,
            temperature=temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
        )

    async def invoke(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
    ) -> ModelResponse:
        """Run one completion.

        Raises:
            ModelInvocationError: On API errors, timeouts or an empty response.
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [_to_openai_message(m) for m in messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            kwargs["tools"] = [_to_openai_tool(t) for t in tools]

        try:
            completion = await with_timeout(
                self._client.chat.completions.create(**kwargs),
                self.timeout,
                "chat_completion",
            )
        except (APIError, TimeoutError) as e:
            log.warning("Chat model call failed", model=self.model, error=str(e))
            raise ModelInvocationError(f"Model call failed: {e}") from e

        if not completion.choices:
            raise ModelInvocationError("Model returned no choices")

        choice = completion.choices[0].message
        calls = []
        for raw_call in choice.tool_calls or []:
            arguments, error = parse_tool_arguments(raw_call.function.arguments)
            calls.append(
                ToolCall(
                    id=raw_call.id,
                    name=raw_call.function.name,
                    arguments=arguments,
                    parse_error=error,
                )
            )

        return ModelResponse(text=choice.content or "", tool_calls=tuple(calls))
