"""Folder and message node models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

NodeType = Literal["prompt", "response", "user", "auto", "system"]

ALL_FOLDERS = "all"


def is_all_folders(folder_id: Optional[str]) -> bool:
    """Return True for the sentinel folder ids that target every folder holding a node."""
    return folder_id is None or folder_id in ("", ALL_FOLDERS)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MessageNode(BaseModel):
    """A single message entry in the tree."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "msg_01",
                "type": "response",
                "content": "Here is the refactored handler...",
                "summary": "AI response",
                "timestamp": "2025-01-15T14:30:00Z",
                "parentId": "msg_00",
                "children": [],
                "tags": ["build", "assistant"],
                "expanded": False,
                "selected": False,
                "locked": False,
                "sessionId": "ses_01",
                "hasLoaded": True,
            }
        },
    )

    id: str = Field(..., min_length=1, max_length=256)
    type: NodeType = "prompt"
    content: str = ""
    summary: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    children: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    expanded: bool = False
    selected: bool = False
    locked: bool = False
    session_id: str = Field(default="", alias="sessionId")
    has_loaded: bool = Field(default=False, alias="hasLoaded")

    @field_validator("parent_id")
    @classmethod
    def _blank_parent_is_root(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Folder(BaseModel):
    """A named collection of message nodes keyed by node id."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=256)
    color: str = "#e94560"
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )
    nodes: Dict[str, MessageNode] = Field(default_factory=dict)

    @field_validator("created_at")
    @classmethod
    def _created_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class FolderCreate(BaseModel):
    """Request payload to create a folder."""

    id: Optional[str] = Field(None, min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=256)
    color: str = "#e94560"


class FolderUpdate(BaseModel):
    """Request payload to rename or recolor a folder."""

    name: Optional[str] = Field(None, min_length=1, max_length=256)
    color: Optional[str] = None


class NodeMutation(BaseModel):
    """Create/update payload: a node plus the folder (or sentinel) it targets."""

    model_config = ConfigDict(populate_by_name=True)

    folder_id: str = Field(default=ALL_FOLDERS, alias="folderId")
    node: MessageNode


class NodeFlagsUpdate(BaseModel):
    """Partial update of the session flags on a node."""

    model_config = ConfigDict(populate_by_name=True)

    folder_id: str = Field(default=ALL_FOLDERS, alias="folderId")
    locked: Optional[bool] = None
    expanded: Optional[bool] = None
    selected: Optional[bool] = None


class ReorderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    folder_id: str = Field(default=ALL_FOLDERS, alias="folderId")
    node_id: str = Field(..., min_length=1, alias="nodeId")
    new_parent_id: Optional[str] = Field(default=None, alias="newParentId")
    new_index: int = Field(default=-1, alias="newIndex")


class CombineRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    node_ids: List[str] = Field(..., min_length=1, alias="nodeIds")


class CombineResponse(BaseModel):
    content: str
    count: int


__all__ = [
    "NodeType",
    "ALL_FOLDERS",
    "is_all_folders",
    "MessageNode",
    "Folder",
    "FolderCreate",
    "FolderUpdate",
    "NodeMutation",
    "NodeFlagsUpdate",
    "ReorderRequest",
    "CombineRequest",
    "CombineResponse",
]
