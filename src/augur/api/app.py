"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI

from augur import __version__
from augur.api.dependencies import get_engine
from augur.api.routes import agent_router, chat_router, index_router, search_router
from augur.api.schemas import HealthResponse
from augur.config import Settings
from augur.engine import EngineContext

log = structlog.get_logger()


def create_app(settings: Settings | None = None, engine: EngineContext | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to build the engine from (defaults to the environment).
        engine: A prebuilt engine; its lifecycle is then left to the caller.

    Returns:
        Configured FastAPI app with all routes.
    """
    owns_engine = engine is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        ctx = engine or EngineContext.build(settings or Settings())
        if owns_engine:
            await ctx.start()
        app.state.engine = ctx
        try:
            yield
        finally:
            if owns_engine:
                await ctx.close()
                log.info("Engine stopped")

    app = FastAPI(
        title="Augur API",
        description="Question answering and actions over organizational data",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.include_router(chat_router)
    app.include_router(index_router)
    app.include_router(search_router)
    app.include_router(agent_router)

    @app.get("/health", response_model=HealthResponse)
    async def health(ctx: EngineContext = Depends(get_engine)) -> HealthResponse:
        """Liveness plus relational store connectivity."""
        database = await ctx.db.check_health()
        return HealthResponse(
            status="healthy" if database.get("status") == "healthy" else "degraded",
            version=__version__,
            database=database,
            vector_store=type(ctx.vector_store).__name__,
            agent_enabled=ctx.settings.agent_enabled,
        )

    return app
