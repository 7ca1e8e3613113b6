"""HTTP API routes controlling the OpenCode sync."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...models.sync import SyncStartResponse, SyncStatus
from ...services.sync_engine import SyncEngine
from ..dependencies import get_sync_engine

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("", response_model=SyncStartResponse, status_code=202)
def start_sync(engine: SyncEngine = Depends(get_sync_engine)):
    """Start a background sync; progress is streamed on /api/events."""
    return SyncStartResponse(status=engine.start())


@router.post("/cancel")
def cancel_sync(engine: SyncEngine = Depends(get_sync_engine)):
    return {"cancelled": engine.cancel()}


@router.get("/status", response_model=SyncStatus)
def sync_status(engine: SyncEngine = Depends(get_sync_engine)):
    return engine.status()


__all__ = ["router"]
