"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from photisnadi.config import Settings, get_settings
from photisnadi.sync.engine import SyncEngine


def get_engine(request: Request) -> SyncEngine:
    """Return the sync engine created by the application lifespan."""
    engine: SyncEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Sync engine not available")
    return engine


# Annotated shortcuts for route signatures
Engine = Annotated[SyncEngine, Depends(get_engine)]
AppSettings = Annotated[Settings, Depends(get_settings)]
