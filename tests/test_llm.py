"""Tests for the OpenAI-backed chat model and embedding client."""

import json

import httpx
import pytest
from openai import AsyncOpenAI

from augur.errors import EmbeddingError, ModelInvocationError
from augur.llm import Message, OpenAIChatModel, ToolCall, ToolSpec, parse_tool_arguments
from augur.rag.embedder import EmbeddingClient
from augur.utils.resilience import RetryConfig


def openai_client(handler) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key="test-key",
        base_url="http://openai.test/v1",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def completion(message: dict) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "finish_reason": "stop", "message": message}],
    }


# =============================================================================
# Chat model
# =============================================================================


@pytest.mark.asyncio
async def test_invoke_returns_text() -> None:
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(
            200, json=completion({"role": "assistant", "content": "Two projects."})
        )

    model = OpenAIChatModel(openai_client(handler), model="gpt-4o-mini", temperature=0.2)

    response = await model.invoke([Message.system("Be brief."), Message.user("How many?")])

    assert response.text == "Two projects."
    assert response.tool_calls == ()
    assert sent[0]["temperature"] == 0.2
    assert sent[0]["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "How many?"},
    ]
    assert "tools" not in sent[0]


@pytest.mark.asyncio
async def test_invoke_binds_tools_and_parses_calls() -> None:
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(
            200,
            json=completion(
                {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_a",
                            "type": "function",
                            "function": {
                                "name": "create_task",
                                "arguments": '{"projectId": "p-1", "title": "Fix login"}',
                            },
                        },
                        {
                            "id": "call_b",
                            "type": "function",
                            "function": {"name": "send_message", "arguments": "{not json"},
                        },
                    ],
                }
            ),
        )

    model = OpenAIChatModel(openai_client(handler), model="gpt-4o-mini")
    spec = ToolSpec(name="create_task", description="Create a task", parameters={"type": "object"})

    response = await model.invoke([Message.user("Create a task")], [spec])

    assert sent[0]["tools"] == [
        {
            "type": "function",
            "function": {
                "name": "create_task",
                "description": "Create a task",
                "parameters": {"type": "object"},
            },
        }
    ]
    assert response.text == ""
    first, second = response.tool_calls
    assert first == ToolCall(
        id="call_a", name="create_task", arguments={"projectId": "p-1", "title": "Fix login"}
    )
    assert second.name == "send_message"
    assert second.arguments == {}
    assert second.parse_error is not None


@pytest.mark.asyncio
async def test_tool_messages_round_trip_to_wire_format() -> None:
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(200, json=completion({"role": "assistant", "content": "Done."}))

    model = OpenAIChatModel(openai_client(handler), model="gpt-4o-mini")
    call = ToolCall(id="call_a", name="get_task", arguments={"taskId": "t-1"})

    await model.invoke(
        [
            Message.user("Show t-1"),
            Message.assistant("", (call,)),
            Message.tool("call_a", '{"success": true}'),
        ]
    )

    assistant, tool = sent[0]["messages"][1:]
    assert assistant["tool_calls"][0]["function"] == {
        "name": "get_task",
        "arguments": '{"taskId": "t-1"}',
    }
    assert tool == {"role": "tool", "content": '{"success": true}', "tool_call_id": "call_a"}


@pytest.mark.asyncio
async def test_api_error_becomes_model_invocation_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": {"message": "overloaded"}})

    model = OpenAIChatModel(openai_client(handler), model="gpt-4o-mini")

    with pytest.raises(ModelInvocationError):
        await model.invoke([Message.user("Hi")])


@pytest.mark.parametrize(
    ("raw", "arguments", "has_error"),
    [
        ('{"a": 1}', {"a": 1}, False),
        ("", {}, False),
        (None, {}, False),
        ("[1, 2]", {}, True),
        ("{oops", {}, True),
    ],
)
def test_parse_tool_arguments(raw: str | None, arguments: dict, has_error: bool) -> None:
    parsed, error = parse_tool_arguments(raw)

    assert parsed == arguments
    assert (error is not None) is has_error


# =============================================================================
# Embedding client
# =============================================================================


def embedding_handler(calls: list[list[str]]):
    def handler(request: httpx.Request) -> httpx.Response:
        texts = json.loads(request.content)["input"]
        calls.append(texts)
        # Returned out of order; the client must restore input order
        data = [
            {"object": "embedding", "index": i, "embedding": [float(len(text)), 0.0]}
            for i, text in reversed(list(enumerate(texts)))
        ]
        return httpx.Response(
            200,
            json={
                "object": "list",
                "data": data,
                "model": "text-embedding-3-small",
                "usage": {"prompt_tokens": 1, "total_tokens": 1},
            },
        )

    return handler


@pytest.mark.asyncio
async def test_embed_many_batches_and_preserves_order() -> None:
    calls: list[list[str]] = []
    client = EmbeddingClient(
        openai_client(embedding_handler(calls)), model="text-embedding-3-small", batch_size=2
    )

    vectors = await client.embed_many(["a", "bb", "ccc"])

    assert calls == [["a", "bb"], ["ccc"]]
    assert [v[0] for v in vectors] == [1.0, 2.0, 3.0]


@pytest.mark.asyncio
async def test_embed_query() -> None:
    client = EmbeddingClient(
        openai_client(embedding_handler([])), model="text-embedding-3-small"
    )

    assert await client.embed_query("four") == [4.0, 0.0]


@pytest.mark.asyncio
async def test_failed_batch_aborts_whole_call() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 2:
            return httpx.Response(500, json={"error": {"message": "boom"}})
        return embedding_handler([])(request)

    client = EmbeddingClient(
        openai_client(handler),
        model="text-embedding-3-small",
        batch_size=1,
        retry_config=RetryConfig(max_attempts=1),
    )

    with pytest.raises(EmbeddingError) as exc_info:
        await client.embed_many(["a", "b", "c"])

    assert exc_info.value.details["batch_offset"] == 1
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_transient_errors_are_retried() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return embedding_handler([])(request)

    client = EmbeddingClient(
        openai_client(handler),
        model="text-embedding-3-small",
        retry_config=RetryConfig(max_attempts=2, base_delay=0.0, jitter=False),
    )

    assert await client.embed_query("hi") == [2.0, 0.0]
    assert len(calls) == 2
