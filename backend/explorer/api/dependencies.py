"""FastAPI dependencies resolving services from the application context."""

from __future__ import annotations

from fastapi import Depends, Request

from ..services.context import ExplorerContext
from ..services.errors import InternalError
from ..services.notifications import NotificationBus
from ..services.search import SearchService
from ..services.sync_engine import SyncEngine
from ..services.tree_store import TreeStore


def get_context(request: Request) -> ExplorerContext:
    context = getattr(request.app.state, "explorer", None)
    if context is None:
        raise InternalError("Explorer context is not initialized")
    return context


def get_tree_store(context: ExplorerContext = Depends(get_context)) -> TreeStore:
    return context.tree_store


def get_search_service(context: ExplorerContext = Depends(get_context)) -> SearchService:
    return context.search_service


def get_sync_engine(context: ExplorerContext = Depends(get_context)) -> SyncEngine:
    return context.sync_engine


def get_bus(context: ExplorerContext = Depends(get_context)) -> NotificationBus:
    return context.bus


__all__ = [
    "get_context",
    "get_tree_store",
    "get_search_service",
    "get_sync_engine",
    "get_bus",
]
