"""Tests for the HTTP API over a fully wired in-memory engine."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass

import httpx
import pytest
import pytest_asyncio

from augur.api import create_app
from tests.harness import (
    EngineHarness,
    FakeBackend,
    engine_harness,
    text_response,
    tool_call,
    tool_response,
)


@dataclass
class ApiHarness:
    client: httpx.AsyncClient
    harness: EngineHarness


@pytest_asyncio.fixture
async def api() -> AsyncGenerator[ApiHarness]:
    backend = FakeBackend()
    backend.on("POST", "/tasks", json={"id": "t-1", "title": "Fix login"}, status=201)
    script = [
        tool_response(tool_call("create_task", {"projectId": "p-x", "title": "Fix login"})),
        text_response("Created task Fix login (ID t-1)."),
    ]
    fallback = text_response("Here is what I found.")
    async with engine_harness(script, default=fallback, backend=backend) as h:
        app = create_app(engine=h.engine)
        # ASGITransport does not run the lifespan
        app.state.engine = h.engine
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield ApiHarness(client=client, harness=h)


def index_body(source_id: str, content: str, **extra: object) -> dict[str, object]:
    return {
        "organizationId": "org-1",
        "sourceSchema": "project",
        "sourceTable": "projects",
        "sourceId": source_id,
        "title": f"Project {source_id}",
        "content": content,
        "contentType": "project",
        **extra,
    }


@pytest.mark.asyncio
async def test_health(api: ApiHarness) -> None:
    response = await api.client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"]["backend"] == "sqlite"
    assert body["vectorStore"] == "RecordingVectorStore"
    assert body["agentEnabled"] is True


@pytest.mark.asyncio
async def test_index_then_search(api: ApiHarness) -> None:
    indexed = await api.client.post(
        "/index", json=index_body("p1", "Customer portal rebuild for Globex")
    )
    assert indexed.status_code == 200
    assert indexed.json()["isNew"] is True

    replay = await api.client.post(
        "/index", json=index_body("p1", "Customer portal rebuild for Globex")
    )
    assert replay.json()["chunksCreated"] == 0

    response = await api.client.post(
        "/search", json={"organizationId": "org-1", "query": "Globex customer portal"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["results"][0]["sourceId"] == "project.projects.p1"
    assert body["results"][0]["contentType"] == "project"


@pytest.mark.asyncio
async def test_index_rejects_unknown_content_type(api: ApiHarness) -> None:
    response = await api.client.post(
        "/index", json=index_body("p1", "Body", contentType="spreadsheet")
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_index_failure_maps_to_bad_gateway(api: ApiHarness) -> None:
    api.harness.embedder.fail = True

    response = await api.client.post("/index", json=index_body("p1", "Body"))

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "RETRIEVAL_FAILED"


@pytest.mark.asyncio
async def test_bulk_index_and_remove(api: ApiHarness) -> None:
    bulk = await api.client.post(
        "/index/bulk",
        json={"documents": [index_body("p1", "First brief"), index_body("p2", "Second brief")]},
    )
    assert bulk.json() == {"indexed": 2, "skipped": 0, "errors": []}

    removed = await api.client.request(
        "DELETE",
        "/index",
        json={"sourceSchema": "project", "sourceTable": "projects", "sourceId": "p1"},
    )
    assert removed.json() == {"removed": True}

    stats = await api.client.get("/chat/stats/org-1")
    assert stats.json()["totalDocuments"] == 1
    assert stats.json()["byContentType"] == {"project": 1}


@pytest.mark.asyncio
async def test_remove_organization(api: ApiHarness) -> None:
    await api.client.post(
        "/index/bulk",
        json={"documents": [index_body("p1", "First brief"), index_body("p2", "Second brief")]},
    )

    response = await api.client.delete("/index/organization/org-1")

    assert response.status_code == 200
    assert response.json() == {"organizationId": "org-1", "removed": 2}
    assert len(api.harness.vector_store) == 0
    stats = await api.client.get("/chat/stats/org-1")
    assert stats.json()["totalDocuments"] == 0


@pytest.mark.asyncio
async def test_organization_overview(api: ApiHarness) -> None:
    response = await api.client.post(
        "/index/organization-overview",
        json={"organization_id": "org-1", "name": "Acme", "client_count": 3},
    )

    assert response.status_code == 200
    assert response.json()["isNew"] is True


@pytest.mark.asyncio
async def test_chat_action_then_history(api: ApiHarness) -> None:
    response = await api.client.post(
        "/chat",
        json={
            "organizationId": "org-1",
            "userId": "user-1",
            "sessionId": "s1",
            "query": "Create a task called 'Fix login' in Project X",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["isActionResponse"] is True
    assert body["actionResult"] == {"success": True, "toolsUsed": ["create_task"], "iterations": 2}
    assert body["answer"] == "Created task Fix login (ID t-1)."
    assert body["errorCode"] is None

    history = await api.client.get("/chat/history/s1")
    messages = history.json()["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[1]["metadata"]["toolsUsed"] == ["create_task"]

    cleared = await api.client.delete("/chat/history/s1")
    assert cleared.json() == {"sessionId": "s1", "removed": 2}


@pytest.mark.asyncio
async def test_chat_out_of_scope(api: ApiHarness) -> None:
    response = await api.client.post(
        "/chat",
        json={"organizationId": "org-1", "userId": "user-1", "query": "Any crypto tips?"},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["isOutOfScope"] is True
    assert body["errorCode"] == "OUT_OF_SCOPE"
    assert body["sessionId"]


@pytest.mark.asyncio
async def test_chat_validates_request(api: ApiHarness) -> None:
    response = await api.client.post("/chat", json={"organizationId": "org-1", "query": "hi"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_tool_catalog(api: ApiHarness) -> None:
    everything = await api.client.get("/agent/tools")
    notifications = await api.client.get("/agent/tools", params={"category": "notification"})

    assert everything.json()["total"] > notifications.json()["total"] > 0
    assert {t["category"] for t in notifications.json()["tools"]} == {"notification"}

    detail = await api.client.get("/agent/tools/create_task")
    assert detail.json()["parameters"]["required"] == ["projectId", "title"]

    missing = await api.client.get("/agent/tools/launch_rockets")
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "TOOL_NOT_FOUND"


@pytest.mark.asyncio
async def test_execute_action(api: ApiHarness) -> None:
    response = await api.client.post(
        "/agent/execute",
        json={
            "organizationId": "org-1",
            "userId": "user-1",
            "query": "Add a Fix login task to Project X",
        },
    )

    body = response.json()
    assert body["isActionResponse"] is True
    assert body["actionResult"]["toolsUsed"] == ["create_task"]
