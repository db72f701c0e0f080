"""Tests for the scope guard and the query routing heuristic."""

import pytest

from augur.agent.routing import Route, action_keyword, requires_agent, route
from augur.scope import check_scope, in_scope


@pytest.mark.parametrize(
    "query",
    [
        "What's your take on politics?",
        "Is religion important?",
        "Can you give me medical advice?",
        "I need legal advice about my lease",
        "Any investment advice for this year?",
        "Should I buy this STOCK?",
        "What about crypto?",
    ],
)
def test_blocked_topics_are_out_of_scope(query: str) -> None:
    decision = check_scope(query)

    assert decision.in_scope is False
    assert in_scope(query) is False


@pytest.mark.parametrize(
    "query",
    [
        "How many open tasks does the mobile team have?",
        "Summarize the Globex proposal",
        "Who is assigned to the onboarding milestone?",
    ],
)
def test_work_questions_are_in_scope(query: str) -> None:
    assert check_scope(query).in_scope is True


@pytest.mark.parametrize(
    ("query", "keyword"),
    [
        ("Create a task for the login bug", "create"),
        ("please SEND a message to the design team", "send"),
        ("Assign Dana to the QA milestone", "assign"),
        ("What is the status of Project X?", None),
        # Whole words only
        ("Show the settings for the recreated board", None),
        ("List the newest clients", None),
    ],
)
def test_action_keyword(query: str, keyword: str | None) -> None:
    assert action_keyword(query) == keyword
    assert requires_agent(query) is (keyword is not None)


def test_route_rejects_before_routing_actions() -> None:
    assert route("Create a post about politics") is Route.SCOPE_REJECTED


def test_route_sends_actions_to_agent() -> None:
    assert route("Create a task called 'Fix login' in Project X") is Route.AGENT_LOOP


def test_route_plain_questions_to_rag() -> None:
    assert route("What is the status of Project X?") is Route.PURE_RAG


def test_route_with_agent_disabled() -> None:
    assert route("Create a task", agent_enabled=False) is Route.PURE_RAG
