"""Explorer service graph, built once per application or test."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from .config import AppConfig, get_config
from .database import DatabaseService
from .notifications import NotificationBus
from .search import SearchService
from .source_reader import SourceReader
from .storage import StorageService
from .sync_engine import SyncEngine
from .tree_store import TreeStore

logger = logging.getLogger(__name__)


@dataclass
class ExplorerContext:
    """Every explorer service wired together."""

    config: AppConfig
    db_service: DatabaseService
    storage: StorageService
    bus: NotificationBus
    tree_store: TreeStore
    sync_engine: SyncEngine
    search_service: SearchService
    source_reader: Optional[SourceReader] = None

    def start(self, *, auto_sync: Optional[bool] = None) -> None:
        """Create the schema, start the bus, load the stored tree, optionally sync."""
        self.db_service.initialize()
        self.bus.start()
        count = self.tree_store.load_from_storage()
        logger.info("Explorer started", extra={"nodes": count})

        should_sync = self.config.auto_sync if auto_sync is None else auto_sync
        if not should_sync:
            return
        if self.source_reader is None or not self.source_reader.message_root.is_dir():
            logger.warning("Skipping startup sync: no OpenCode message directory found")
            return
        self.sync_engine.start()

    def close(self, timeout: float = 5.0) -> None:
        self.sync_engine.cancel()
        self.sync_engine.wait(timeout)
        self.bus.stop(timeout)
        self.db_service.close()


def build_context(config: AppConfig | None = None) -> ExplorerContext:
    """Construct an unstarted context from configuration."""
    config = config or get_config()
    db_service = DatabaseService(config.database_path)
    storage = StorageService(db_service)
    bus = NotificationBus(config.event_queue_size, config.subscriber_outbox_size)
    source_reader = SourceReader(config.source_data_dir) if config.source_data_dir else None
    tree_store = TreeStore(storage, bus, config=config, source_reader=source_reader)
    sync_engine = SyncEngine(tree_store, storage, bus, source_reader=source_reader)
    search_service = SearchService(tree_store, storage, config)
    return ExplorerContext(
        config=config,
        db_service=db_service,
        storage=storage,
        bus=bus,
        tree_store=tree_store,
        sync_engine=sync_engine,
        search_service=search_service,
        source_reader=source_reader,
    )


__all__ = ["ExplorerContext", "build_context"]
