"""Search request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .node import NodeType

SearchMode = Literal["indexed", "fuzzy"]


class RankedNode(BaseModel):
    """Search hit with denormalized folder metadata for display."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: NodeType
    summary: str = ""
    timestamp: Optional[datetime] = None
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    folder_id: str = Field(..., alias="folderId")
    folder_name: str = Field("", alias="folderName")
    folder_color: str = Field("", alias="folderColor")
    rank: float = Field(..., description="Relevance rank (lower is better)")
    score: Optional[float] = Field(None, description="Weighted fuzzy score (fuzzy mode only)")
    matches: List[str] = Field(default_factory=list, description="Fields that matched")


class SearchRequest(BaseModel):
    """Search query parameters."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., max_length=256)
    raw: bool = Field(False, description="Match content and type only")
    type: Optional[NodeType] = None
    limit: Optional[int] = Field(None, ge=1, le=1000)
    mode: Optional[SearchMode] = None


__all__ = ["SearchMode", "RankedNode", "SearchRequest"]
