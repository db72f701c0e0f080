"""API route modules."""

from augur.api.routes.agent import router as agent_router
from augur.api.routes.chat import router as chat_router
from augur.api.routes.index import router as index_router
from augur.api.routes.search import router as search_router

__all__ = [
    "agent_router",
    "chat_router",
    "index_router",
    "search_router",
]
