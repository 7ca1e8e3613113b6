"""Service layer: source reading, tree store, persistence, sync, search and events."""

from .config import AppConfig, get_config, reload_config
from .context import ExplorerContext, build_context
from .database import DatabaseService
from .errors import (
    ConfigurationError,
    DatabaseError,
    ExplorerError,
    InternalError,
    NotFoundError,
    SyncError,
    ValidationError,
)
from .notifications import NotificationBus, Subscription
from .search import SearchService
from .source_reader import SourceReader
from .storage import StorageService
from .sync_engine import SyncEngine
from .tree_store import TreeStore, normalize_children

__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "ExplorerContext",
    "build_context",
    "DatabaseService",
    "ExplorerError",
    "NotFoundError",
    "ValidationError",
    "DatabaseError",
    "SyncError",
    "InternalError",
    "ConfigurationError",
    "NotificationBus",
    "Subscription",
    "SearchService",
    "SourceReader",
    "StorageService",
    "SyncEngine",
    "TreeStore",
    "normalize_children",
]
