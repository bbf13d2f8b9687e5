"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from photisnadi.dependencies import AppSettings, Engine

router = APIRouter(tags=["system"])
logger = logging.getLogger("photisnadi.health")


@router.get("/health")
async def health_check(engine: Engine, settings: AppSettings) -> dict:
    """Liveness check. Returns 200 if the process is up.

    Reports ``degraded`` while the sync engine is not initialized.
    """
    engine_ok = engine.is_initialized
    if not engine_ok:
        logger.warning("Health check: sync engine not initialized")

    return {
        "status": "healthy" if engine_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "engine": "initialized" if engine_ok else "uninitialized",
        "realtime": engine.realtime_active,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
