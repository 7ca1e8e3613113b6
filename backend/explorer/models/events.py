"""Live-update event envelope."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

EventType = Literal["init", "progress", "update", "error"]


class TreeEvent(BaseModel):
    """Event pushed to subscribers; `data` holds full state, progress or an error message."""

    type: EventType
    data: Any = None


__all__ = ["EventType", "TreeEvent"]
