"""Map raw OpenCode messages to typed, tagged message nodes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Mapping, Tuple

from ..models.node import MessageNode
from ..models.source import SourceMessage

AUTO_GENERATED_TAG = "auto-generated"

AUTO_GENERATED_PATTERNS: tuple[str, ...] = (
    "auto-generated",
    "auto generated",
    "previous query",
    "previous prompt",
    "history",
    "continue",
    "resume",
    "up arrow",
    "↑",
    "↑ arrow",
    "continuation",
    "repeating",
    "recalling",
    "recall",
)

ROLE_TYPES = {
    "assistant": "response",
    "system": "system",
    "user": "user",
}


def normalize_title(summary: Any) -> str:
    """Collapse the polymorphic summary field into a plain title string.

    Absent and boolean summaries carry no title. A mapping contributes its
    string ``title`` key. Any other shape yields an empty string.
    """
    if summary is None or isinstance(summary, bool):
        return ""
    if isinstance(summary, str):
        return summary
    if isinstance(summary, Mapping):
        title = summary.get("title")
        if isinstance(title, str):
            return title
    return ""


def is_auto_generated(title: str) -> bool:
    if not title:
        return False
    lowered = title.lower()
    return any(pattern in lowered for pattern in AUTO_GENERATED_PATTERNS)


def classify(role: str, title: str, agent: str) -> Tuple[str, List[str]]:
    """Return (node type, tags) for a message role and normalized title."""
    tags = [agent, role]
    if role == "user" and is_auto_generated(title):
        return "auto", tags + [AUTO_GENERATED_TAG]
    return ROLE_TYPES.get(role, "prompt"), tags


def display_summary(role: str, title: str) -> str:
    if title:
        return title
    if role == "assistant":
        return "AI response"
    if role == "system":
        return "System message"
    return f"{role} message"


def epoch_ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def build_node(message: SourceMessage) -> MessageNode:
    """Build an unloaded node (no content, no children) from a source message."""
    title = normalize_title(message.summary)
    node_type, tags = classify(message.role, title, message.agent)
    return MessageNode(
        id=message.id,
        type=node_type,
        summary=display_summary(message.role, title),
        timestamp=epoch_ms_to_datetime(message.time.created),
        parent_id=message.parent_id,
        tags=tags,
        session_id=message.session_id,
        has_loaded=False,
    )


def is_auto_node(node: MessageNode) -> bool:
    """True for nodes classified as auto-generated prompts."""
    return node.type == "auto" or AUTO_GENERATED_TAG in node.tags


__all__ = [
    "AUTO_GENERATED_TAG",
    "AUTO_GENERATED_PATTERNS",
    "normalize_title",
    "is_auto_generated",
    "classify",
    "display_summary",
    "epoch_ms_to_datetime",
    "build_node",
    "is_auto_node",
]
