"""Photisnadi Sync — FastAPI application hosting one sync engine.

Run locally:
    uvicorn photisnadi.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from photisnadi.config import get_settings
from photisnadi.routers import health, sync
from photisnadi.sync.engine import SyncEngine

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("photisnadi")


# ---------- App factory ----------

def create_app(engine: SyncEngine | None = None) -> FastAPI:
    """Build the app; ``engine`` overrides the settings-driven default (tests)."""
    settings = get_settings()
    logging.getLogger("photisnadi").setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup / shutdown hooks."""
        logger.info(
            "Starting Photisnadi Sync v%s [%s]",
            settings.app_version,
            settings.environment,
        )
        sync_engine = engine or SyncEngine(settings)
        app.state.engine = sync_engine
        if await sync_engine.initialize():
            if settings.realtime_enabled:
                await sync_engine.start_realtime()
        else:
            logger.error("Sync engine failed to initialize; sync endpoints will report failure")
        yield
        await sync_engine.shutdown()
        logger.info("Photisnadi Sync shut down")

    app = FastAPI(
        title="Photisnadi Sync",
        description="Bidirectional sync of tasks, projects and rituals with Supabase.",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(sync.router, prefix="/api/v1")

    return app


app = create_app()
