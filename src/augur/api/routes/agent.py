"""Agent endpoints: tool catalog introspection and direct action execution."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from augur.actions.catalog import ToolInfo, get_tool, list_tools
from augur.actions.models import ActionCategory
from augur.api.dependencies import get_query_service
from augur.api.routes.chat import to_chat_response, to_query_request
from augur.api.schemas import ChatRequest, ChatResponse, ToolListResponse, ToolResponse
from augur.engine import QueryService

log = structlog.get_logger()
router = APIRouter(prefix="/agent", tags=["agent"])


def _to_response(tool: ToolInfo) -> ToolResponse:
    return ToolResponse(
        name=tool.name,
        description=tool.description,
        category=tool.category,
        parameters=tool.parameters,
    )


@router.get("/tools", response_model=ToolListResponse)
async def get_tools(
    category: list[ActionCategory] | None = Query(default=None),
) -> ToolListResponse:
    """List the tools the agent can call, optionally filtered by category."""
    tools = [_to_response(t) for t in list_tools(category)]
    return ToolListResponse(tools=tools, total=len(tools))


@router.get("/tools/{name}", response_model=ToolResponse)
async def get_tool_detail(name: str) -> ToolResponse:
    tool = get_tool(name)
    if tool is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "TOOL_NOT_FOUND", "message": f'Tool "{name}" not found'},
        )
    return _to_response(tool)


@router.post("/execute", response_model=ChatResponse)
async def execute(
    request: ChatRequest, service: QueryService = Depends(get_query_service)
) -> ChatResponse:
    """Run the agent loop directly, without keyword routing."""
    log.info("Direct action request", organization_id=request.organization_id)
    response = await service.execute_action(to_query_request(request))
    return to_chat_response(response)
