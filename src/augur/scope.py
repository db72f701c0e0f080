"""Scope guard - rejects out-of-domain queries before any paid call."""

import re
from dataclasses import dataclass

BLOCKED_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"politic",
        r"religio",
        r"medical advice",
        r"legal advice",
        r"investment advice",
        r"stock",
        r"crypto",
    )
)

REFUSAL = (
    "I'm sorry, but I can only help with questions related to your projects, tasks, "
    "team, and organization data. Is there anything about your work I can help you with?"
)


@dataclass(frozen=True)
class ScopeDecision:
    in_scope: bool
    matched: str | None = None


def check_scope(query: str) -> ScopeDecision:
    for pattern in BLOCKED_PATTERNS:
        if pattern.search(query):
            return ScopeDecision(in_scope=False, matched=pattern.pattern)
    return ScopeDecision(in_scope=True)


def in_scope(query: str) -> bool:
    """True unless ``query`` mentions a blocked topic."""
    return check_scope(query).in_scope
