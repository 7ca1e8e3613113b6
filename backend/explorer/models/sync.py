"""Sync run status models."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

SyncPhase = Literal[
    "idle", "init", "reading", "building", "writing", "complete", "error", "cancelled"
]
SyncMode = Literal["full", "incremental"]


class SyncProgress(BaseModel):
    """Progress report published while a sync run executes."""

    phase: SyncPhase
    message: str = ""
    processed: int = Field(0, ge=0)
    total: int = Field(0, ge=0)
    error: Optional[str] = None


class SyncResult(BaseModel):
    """Outcome of the most recent sync run."""

    phase: SyncPhase = "idle"
    mode: Optional[SyncMode] = None
    inserted: int = 0
    updated: int = 0
    total: int = 0
    error: Optional[str] = None


class SyncStartResponse(BaseModel):
    status: Literal["started", "already_running"]


class SyncStatus(BaseModel):
    running: bool
    progress: Optional[SyncProgress] = None
    last_result: Optional[SyncResult] = None


__all__ = [
    "SyncPhase",
    "SyncMode",
    "SyncProgress",
    "SyncResult",
    "SyncStartResponse",
    "SyncStatus",
]
