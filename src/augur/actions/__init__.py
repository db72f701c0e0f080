"""Typed actions against the backend services and the gateway that runs them."""

from augur.actions.catalog import ToolInfo, get_tool, list_tools, tools_by_category
from augur.actions.gateway import ActionGateway
from augur.actions.models import (
    ACTIONS_BY_NAME,
    Action,
    ActionCategory,
    ActionResult,
    decode_action,
)

__all__ = [
    "ACTIONS_BY_NAME",
    "Action",
    "ActionCategory",
    "ActionGateway",
    "ActionResult",
    "ToolInfo",
    "decode_action",
    "get_tool",
    "list_tools",
    "tools_by_category",
]
