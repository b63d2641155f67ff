"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.db import close_db, init_db
from app.engine import NowPlayingEngine
from app.routes_now_playing import router as now_playing_router

logger = logging.getLogger(__name__)

EngineFactory = Callable[[], NowPlayingEngine]


def create_app(engine_factory: EngineFactory | None = None) -> FastAPI:
    """Build the app; *engine_factory* lets tests swap the upstream."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle hook."""
        settings = get_settings()
        await init_db()
        logger.info("DB ready at %s", settings.db_abs_path)

        engine = (engine_factory or NowPlayingEngine.from_settings)()
        app.state.engine = engine
        engine.start()
        yield
        await engine.aclose()
        app.state.engine = None
        await close_db()
        logger.info("Engine stopped, DB closed")

    app = FastAPI(
        title="now-playing sync",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(now_playing_router)

    @app.get("/health")
    async def health(request: Request):
        """Simple health-check endpoint."""
        engine = getattr(request.app.state, "engine", None)
        return JSONResponse(
            {
                "status": "ok",
                "version": app.version,
                "poller": engine.poller.state.value if engine else None,
            }
        )

    return app


app = create_app()
