"""Tool catalog - which actions are bound to the model, grouped by category."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from augur.actions.models import (
    ACTION_TYPES,
    ActionCategory,
    ActionParams,
    action_name,
    tool_schema,
)
from augur.llm import ToolSpec


@dataclass(frozen=True)
class ToolInfo:
    """Introspection record for one tool."""

    name: str
    description: str
    category: ActionCategory
    parameters: dict[str, Any]

    def to_spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, parameters=self.parameters)


def _info(action_type: type[ActionParams]) -> ToolInfo:
    return ToolInfo(
        name=action_name(action_type),
        description=action_type.description,
        category=action_type.category,
        parameters=tool_schema(action_type),
    )


ALL_TOOLS: tuple[ToolInfo, ...] = tuple(_info(t) for t in ACTION_TYPES)
_TOOLS_BY_NAME = {tool.name: tool for tool in ALL_TOOLS}


def list_tools(categories: Iterable[ActionCategory | str] | None = None) -> list[ToolInfo]:
    """Tools in the given categories, or all tools when none are given.

    Raises:
        ValueError: If a category name is unknown.
    """
    wanted = {ActionCategory(c) for c in categories or ()}
    if not wanted:
        return list(ALL_TOOLS)
    return [tool for tool in ALL_TOOLS if tool.category in wanted]


def get_tool(name: str) -> ToolInfo | None:
    return _TOOLS_BY_NAME.get(name)


def tools_by_category() -> dict[ActionCategory, list[str]]:
    grouped: dict[ActionCategory, list[str]] = {c: [] for c in ActionCategory}
    for tool in ALL_TOOLS:
        grouped[tool.category].append(tool.name)
    return grouped
