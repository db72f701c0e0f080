"""Tests for the agent orchestrator's bounded tool-calling loop."""

import json

import httpx
import pytest

from augur.actions.models import ActionCategory
from augur.agent.orchestrator import MAX_ITERATIONS_MESSAGE, AgentOrchestrator
from augur.errors import ErrorCode, ModelInvocationError
from augur.llm import Message, Role
from tests.harness import (
    FakeBackend,
    ScriptedChatModel,
    text_response,
    tool_call,
    tool_response,
)


def tool_payload(message: Message) -> dict:
    assert message.role is Role.TOOL
    return json.loads(message.content)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


async def run(
    model: ScriptedChatModel, backend: FakeBackend, query: str = "do it", **kwargs: object
):
    orchestrator = AgentOrchestrator(model, backend.gateway(), max_iterations=5)
    return await orchestrator.run(query, organization_id="org-1", user_id="user-1", **kwargs)


@pytest.mark.asyncio
async def test_create_task_after_looking_up_project(backend: FakeBackend) -> None:
    backend.on("GET", "/projects", json=[{"id": "p-x", "name": "Project X"}])
    backend.on("POST", "/tasks", json={"id": "t-1", "title": "Fix login"}, status=201)
    model = ScriptedChatModel(
        [
            tool_response(
                tool_call("list_projects", {"organizationId": "org-1", "search": "Project X"})
            ),
            tool_response(tool_call("create_task", {"projectId": "p-x", "title": "Fix login"})),
            text_response("Created task Fix login (ID t-1) in Project X."),
        ]
    )

    result = await run(model, backend, "Create a task called 'Fix login' in Project X")

    assert result.success is True
    assert result.response == "Created task Fix login (ID t-1) in Project X."
    assert result.tools_used == ["list_projects", "create_task"]
    assert result.iterations == 3
    assert result.error_code is None

    [post] = backend.calls_to("POST", "/tasks")
    assert json.loads(post.content) == {
        "projectId": "p-x",
        "title": "Fix login",
        "status": "todo",
        "priority": "medium",
    }

    # The model saw the lookup result before creating the task
    lookup = tool_payload(model.calls[1].messages[-1])
    assert lookup == {"success": True, "data": [{"id": "p-x", "name": "Project X"}]}


@pytest.mark.asyncio
async def test_system_prompt_and_history(backend: FakeBackend) -> None:
    model = ScriptedChatModel([text_response("Hello again.")])
    history = [Message.user("Hi"), Message.assistant("Hello!")]

    await run(model, backend, "Create something", history=history, organization_name="Acme")

    messages = model.calls[0].messages
    assert messages[0].role is Role.SYSTEM
    assert 'organization "Acme"' in messages[0].content
    assert '"org-1"' in messages[0].content
    assert messages[1:3] == history
    assert messages[-1] == Message.user("Create something")


@pytest.mark.asyncio
async def test_stops_at_iteration_ceiling(backend: FakeBackend) -> None:
    backend.on("GET", "/projects", json=[])
    model = ScriptedChatModel(
        default=tool_response(tool_call("list_projects", {"organizationId": "org-1"}))
    )

    result = await run(model, backend)

    assert result.success is False
    assert result.response == MAX_ITERATIONS_MESSAGE
    assert result.error_code is ErrorCode.MAX_ITERATIONS_REACHED
    assert result.iterations == 5
    assert model.call_count == 5
    assert result.tools_used == ["list_projects"] * 5


@pytest.mark.asyncio
async def test_run_level_ceiling_override(backend: FakeBackend) -> None:
    backend.on("GET", "/projects", json=[])
    model = ScriptedChatModel(
        default=tool_response(tool_call("list_projects", {"organizationId": "org-1"}))
    )

    result = await run(model, backend, max_iterations=2)

    assert result.iterations == 2
    assert model.call_count == 2


@pytest.mark.asyncio
async def test_tool_failure_is_fed_back_and_run_recovers(backend: FakeBackend) -> None:
    attempts = []

    def create_task(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) == 1:
            return httpx.Response(404, json={"error": "Project not found"})
        return httpx.Response(201, json={"id": "t-2"})

    backend.on("POST", "/tasks", handler=create_task)
    model = ScriptedChatModel(
        [
            tool_response(tool_call("create_task", {"projectId": "bad", "title": "Fix"})),
            tool_response(tool_call("create_task", {"projectId": "p-x", "title": "Fix"})),
            text_response("Done on the second try."),
        ]
    )

    result = await run(model, backend)

    failure = tool_payload(model.calls[1].messages[-1])
    assert failure["success"] is False
    assert "Project not found" in failure["error"]
    assert result.success is True
    assert result.tools_used == ["create_task", "create_task"]


@pytest.mark.asyncio
async def test_unknown_tool_becomes_tool_result(backend: FakeBackend) -> None:
    model = ScriptedChatModel(
        [
            tool_response(tool_call("launch_rockets", {})),
            text_response("I can't do that."),
        ]
    )

    result = await run(model, backend)

    assert result.success is True
    assert tool_payload(model.calls[1].messages[-1]) == {
        "success": False,
        "error": 'Tool "launch_rockets" not found',
    }
    assert backend.requests == []


@pytest.mark.asyncio
async def test_only_enabled_categories_are_bound(backend: FakeBackend) -> None:
    model = ScriptedChatModel(
        [
            tool_response(tool_call("create_task", {"projectId": "p", "title": "x"})),
            text_response("Tasks are not available here."),
        ]
    )

    await run(model, backend, categories=[ActionCategory.COMMUNICATION])

    bound = {spec.name for spec in model.calls[0].tools or []}
    assert "send_message" in bound
    assert "create_task" not in bound
    assert tool_payload(model.calls[1].messages[-1])["error"] == 'Tool "create_task" not found'
    assert backend.requests == []


@pytest.mark.asyncio
async def test_invalid_arguments_never_reach_backend(backend: FakeBackend) -> None:
    model = ScriptedChatModel(
        [
            tool_response(
                tool_call("create_task", {"title": "No project"}),
                tool_call("send_message", parse_error="arguments are not valid JSON"),
            ),
            text_response("Which project?"),
        ]
    )

    result = await run(model, backend)

    first, second = model.calls[1].messages[-2:]
    assert "Invalid arguments for create_task" in tool_payload(first)["error"]
    assert "projectId" in tool_payload(first)["error"]
    assert "not valid JSON" in tool_payload(second)["error"]
    assert backend.requests == []
    assert result.success is True


@pytest.mark.asyncio
async def test_parallel_calls_all_answered_before_next_round(backend: FakeBackend) -> None:
    backend.on("GET", "/projects", json=[{"id": "p1", "name": "Portal"}])
    backend.on("GET", "/clients", json=[{"id": "c1", "name": "Globex"}])
    projects = tool_call("list_projects", {"organizationId": "org-1"}, call_id="a")
    clients = tool_call("list_clients", {"organizationId": "org-1"}, call_id="b")
    model = ScriptedChatModel(
        [tool_response(projects, clients), text_response("One project, one client.")]
    )

    result = await run(model, backend)

    messages = model.calls[1].messages
    assistant, *tool_messages = messages[-3:]
    assert assistant.tool_calls == (projects, clients)
    assert [m.tool_call_id for m in tool_messages] == ["a", "b"]
    assert result.iterations == 2
    assert result.tools_used == ["list_projects", "list_clients"]


@pytest.mark.asyncio
async def test_unreachable_service_is_a_tool_failure(backend: FakeBackend) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    backend.on("POST", "/messages", handler=refuse)
    model = ScriptedChatModel(
        [
            tool_response(
                tool_call(
                    "send_message",
                    {"channelId": "ch-1", "senderId": "user-1", "content": "Standup moved"},
                )
            ),
            text_response("The communication service is down."),
        ]
    )

    result = await run(model, backend)

    payload = tool_payload(model.calls[1].messages[-1])
    assert payload["error"] == (
        "Communication Service is not available. Please ensure the service is running."
    )
    assert result.success is True


@pytest.mark.asyncio
async def test_model_failure_ends_run(backend: FakeBackend) -> None:
    model = ScriptedChatModel([ModelInvocationError("Model call failed: 503")])

    result = await run(model, backend)

    assert result.success is False
    assert result.error_code is ErrorCode.MODEL_INVOCATION_FAILED
    assert result.response == "An error occurred: Model call failed: 503"
    assert result.iterations == 1


def test_rejects_non_positive_ceiling(backend: FakeBackend) -> None:
    with pytest.raises(ValueError):
        AgentOrchestrator(ScriptedChatModel(), backend.gateway(), max_iterations=0)
