"""Pydantic models for data validation and serialization."""

from .events import TreeEvent
from .node import (
    CombineRequest,
    CombineResponse,
    Folder,
    FolderCreate,
    FolderUpdate,
    MessageNode,
    NodeFlagsUpdate,
    NodeMutation,
    ReorderRequest,
)
from .search import RankedNode, SearchRequest
from .source import SourceMessage, SourcePart
from .sync import SyncProgress, SyncResult, SyncStartResponse, SyncStatus

__all__ = [
    "TreeEvent",
    "Folder",
    "FolderCreate",
    "FolderUpdate",
    "MessageNode",
    "NodeMutation",
    "NodeFlagsUpdate",
    "ReorderRequest",
    "CombineRequest",
    "CombineResponse",
    "RankedNode",
    "SearchRequest",
    "SourceMessage",
    "SourcePart",
    "SyncProgress",
    "SyncResult",
    "SyncStartResponse",
    "SyncStatus",
]
