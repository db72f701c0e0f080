"""Test harness for the Augur engine.

Fakes and wiring for testing the engine without network access: a
deterministic embedder, a recording vector store, a scripted chat model,
and a fake backend reached through ``httpx.MockTransport``.

Example usage:

    from tests.harness import engine_harness, text_response

    async def test_answer():
        async with engine_harness([text_response("Two projects.")]) as h:
            response = await h.service.query(QueryRequest(...))
            assert response.answer == "Two projects."
"""

from tests.harness.context import (
    FAST_RETRY,
    SERVICE_URLS,
    EngineHarness,
    FakeBackend,
    engine_harness,
    make_settings,
)
from tests.harness.mocks import (
    HashEmbedder,
    ModelCall,
    RecordingVectorStore,
    ScriptedChatModel,
    text_response,
    tool_call,
    tool_response,
)

__all__ = [
    # Context
    "FAST_RETRY",
    "SERVICE_URLS",
    "EngineHarness",
    "FakeBackend",
    "engine_harness",
    "make_settings",
    # Mocks
    "HashEmbedder",
    "ModelCall",
    "RecordingVectorStore",
    "ScriptedChatModel",
    "text_response",
    "tool_call",
    "tool_response",
]
