"""FastAPI application main entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .middleware import register_error_handlers  # noqa: E402
from .routes import events, folders, messages, search, sync  # noqa: E402
from ..services.context import ExplorerContext, build_context  # noqa: E402

logger = logging.getLogger(__name__)


def create_app(context: ExplorerContext | None = None) -> FastAPI:
    """Build the application; a prepared `context` replaces the configured one."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the explorer services for the lifetime of the app."""
        explorer = context or build_context()
        logger.info("Running startup: loading message tree from %s", explorer.db_service.db_path)
        explorer.start()
        app.state.explorer = explorer
        try:
            yield
        finally:
            explorer.close()
            logger.info("Explorer services stopped")

    app = FastAPI(
        title="OC Message Explorer API",
        description="Browse, organize and search OpenCode conversation history",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(folders.router)
    app.include_router(messages.router)
    app.include_router(search.router)
    app.include_router(sync.router)
    app.include_router(events.router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


__all__ = ["app", "create_app"]
