"""Models for the OpenCode on-disk storage records."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageTime(BaseModel):
    created: int = Field(0, description="Creation time in epoch milliseconds")


class SourceMessage(BaseModel):
    """One message file under storage/message/<sessionID>/."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    session_id: str = Field(default="", alias="sessionID")
    role: str = ""
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    time: MessageTime = Field(default_factory=MessageTime)
    summary: Any = None
    agent: str = ""


class SourcePart(BaseModel):
    """One part file under storage/part/<messageID>/."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    message_id: str = Field(default="", alias="messageID")
    type: str = ""
    text: str = ""


__all__ = ["MessageTime", "SourceMessage", "SourcePart"]
