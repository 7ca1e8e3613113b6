"""HTTP API route handlers."""

from . import events, folders, messages, search, sync

__all__ = ["events", "folders", "messages", "search", "sync"]
