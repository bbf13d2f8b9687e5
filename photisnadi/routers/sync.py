"""Sync control endpoints: full and per-collection sync, realtime on/off, status."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from photisnadi.dependencies import Engine
from photisnadi.sync.collections import COLLECTION_REGISTRY

router = APIRouter(prefix="/sync", tags=["sync"])
logger = logging.getLogger("photisnadi.routers.sync")


@router.get("/status")
async def sync_status(engine: Engine) -> dict:
    return {
        "initialized": engine.is_initialized,
        "realtime": engine.realtime_active,
        "channels": engine.realtime_channels,
        "collections": list(COLLECTION_REGISTRY),
    }


@router.post("")
async def sync_all(engine: Engine) -> dict:
    """Synchronize every collection; ``success`` is False if any failed."""
    return {"success": await engine.synchronize_all()}


# Declared before /{collection} so "realtime" is not taken as a collection name.
@router.post("/realtime/start")
async def start_realtime(engine: Engine) -> dict:
    await engine.start_realtime()
    return {"realtime": engine.realtime_active, "channels": engine.realtime_channels}


@router.post("/realtime/stop")
async def stop_realtime(engine: Engine) -> dict:
    await engine.stop_realtime()
    return {"realtime": engine.realtime_active, "channels": engine.realtime_channels}


@router.post("/{collection}")
async def sync_collection(collection: str, engine: Engine) -> dict:
    if collection not in COLLECTION_REGISTRY:
        raise HTTPException(status_code=404, detail=f"Unknown collection '{collection}'")
    return {"collection": collection, "success": await engine.synchronize(collection)}
