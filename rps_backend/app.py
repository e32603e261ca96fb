from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from tortoise.contrib.fastapi import RegisterTortoise

from . import config
from .directory import RoomDirectory, StatusMirror, TortoiseRoomDirectory
from .handler import ConnectionHandler
from .routers import rooms as rooms_router
from .routers import websockets as ws_router
from .state import InMemorySessionRegistry, SessionRegistry

logger = logging.getLogger(__name__)


# -----------------------------
# Lifespan (startup / graceful shutdown)
# -----------------------------


async def _shutdown(app: FastAPI) -> None:
    # Live connections first, then pending writes; the store closes last.
    await app.state.handler.shutdown()
    await app.state.directory.close()
    logger.info("Shutdown complete")


@asynccontextmanager
async def _lifespan_with_database(app: FastAPI):
    async with RegisterTortoise(
        app,
        db_url=config.DB_URL,
        modules=config.DB_MODULES,
        generate_schemas=True,
    ):
        logger.info("Connected to database %s", config.DB_URL)
        try:
            yield
        finally:
            await _shutdown(app)
        logger.info("Closing database connection...")


@asynccontextmanager
async def _lifespan_without_database(app: FastAPI):
    try:
        yield
    finally:
        await _shutdown(app)


# -----------------------------
# FastAPI app factory
# -----------------------------


def create_app(
    directory: Optional[RoomDirectory] = None,
    registry: Optional[SessionRegistry] = None,
    next_round_delay: float = config.NEXT_ROUND_DELAY,
) -> FastAPI:
    """Build the application.

    Without an explicit *directory* the durable store is the Tortoise ``Game``
    table at ``config.DB_URL``, opened and closed by the app lifespan.
    """
    config.configure_logging()

    use_database = directory is None
    directory = directory or TortoiseRoomDirectory()
    registry = registry or InMemorySessionRegistry()

    app = FastAPI(
        title="Rock Paper Scissors Online",
        lifespan=_lifespan_with_database if use_database else _lifespan_without_database,
    )
    app.state.directory = directory
    app.state.registry = registry
    app.state.handler = ConnectionHandler(
        registry=registry,
        directory=directory,
        mirror=StatusMirror(directory),
        next_round_delay=next_round_delay,
    )

    # Allow all origins during development – adjust RPS_CORS_ORIGINS for production.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(rooms_router.router)
    app.include_router(ws_router.router)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok", "rooms": len(app.state.registry)}

    return app


app = create_app()

__all__ = ["app", "create_app"]
