"""FastAPI dependencies and error translation."""

from fastapi import Depends, HTTPException, Request

from augur.engine import EngineContext, QueryService
from augur.errors import AugurError, ErrorCode

_STATUS_BY_CODE = {
    ErrorCode.TOOL_NOT_FOUND: 404,
    ErrorCode.INVALID_TOOL_ARGUMENTS: 422,
    ErrorCode.RETRIEVAL_FAILED: 502,
    ErrorCode.MODEL_INVOCATION_FAILED: 502,
    ErrorCode.TOOL_EXECUTION_FAILED: 502,
    ErrorCode.PERSISTENCE_FAILED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_engine(request: Request) -> EngineContext:
    """The engine built by the app lifespan."""
    return request.app.state.engine


def get_query_service(engine: EngineContext = Depends(get_engine)) -> QueryService:
    return QueryService(engine)


def http_error(error: AugurError) -> HTTPException:
    """Translate an engine error into a ``{code, message}`` HTTP error."""
    return HTTPException(
        status_code=_STATUS_BY_CODE.get(error.code, 500),
        detail={"code": str(error.code), "message": error.message},
    )
