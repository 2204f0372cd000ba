from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from cardsync.core.config import settings
from cardsync.core.container import cleanup_dependencies, init_dependencies
from cardsync.core.logging import setup_logging

from .routes import block_routes, health_routes, sync_routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await init_dependencies()
    yield
    # Shutdown
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    setup_logging(settings.log_level, settings.log_json)

    app = FastAPI(
        title="Anki Block Sync API",
        description="API for parsing anki-cards blocks and synchronizing them with AnkiConnect",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Include routers
    app.include_router(block_routes.router)
    app.include_router(sync_routes.router)
    app.include_router(health_routes.router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("cardsync.api.main:app", host="127.0.0.1", port=8000, reload=True, log_level="info")
