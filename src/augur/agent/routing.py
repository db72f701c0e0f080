"""Query routing: scope rejection, plain question answering, or the agent loop.

Routing is a keyword heuristic rather than a second model call, so every
decision can be explained by pointing at the word that triggered it.
"""

import re
from enum import StrEnum

from augur.scope import check_scope

ACTION_KEYWORDS: tuple[str, ...] = (
    "create",
    "add",
    "make",
    "new",
    "update",
    "change",
    "modify",
    "edit",
    "delete",
    "remove",
    "cancel",
    "send",
    "notify",
    "message",
    "assign",
    "move",
    "transfer",
    "set",
    "configure",
    "schedule",
    "book",
    "invite",
    "join",
)

_ACTION_PATTERN = re.compile(r"\b(" + "|".join(ACTION_KEYWORDS) + r")\b", re.IGNORECASE)


class Route(StrEnum):
    SCOPE_REJECTED = "scope_rejected"
    PURE_RAG = "pure_rag"
    AGENT_LOOP = "agent_loop"


def action_keyword(query: str) -> str | None:
    """The first action keyword in ``query``, if any."""
    match = _ACTION_PATTERN.search(query)
    return match.group(1).lower() if match else None


def requires_agent(query: str) -> bool:
    return action_keyword(query) is not None


def route(query: str, *, agent_enabled: bool = True) -> Route:
    if not check_scope(query).in_scope:
        return Route.SCOPE_REJECTED
    if agent_enabled and requires_agent(query):
        return Route.AGENT_LOOP
    return Route.PURE_RAG
