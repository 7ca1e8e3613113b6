"""Reconcile the OpenCode source tree into storage and the in-memory tree."""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, List, Optional

from ..models.node import MessageNode
from ..models.sync import SyncMode, SyncPhase, SyncProgress, SyncResult, SyncStatus
from .classifier import build_node
from .errors import ConfigurationError, DatabaseError, ExplorerError
from .notifications import NotificationBus
from .source_reader import SourceReader
from .storage import StorageService
from .tree_store import TreeStore, normalize_children

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 100


class _Cancelled(Exception):
    """Raised inside a run once its cancellation token is observed."""


class SyncEngine:
    """Run one sync at a time on a background thread.

    Each run owns a fresh cancellation token; ``cancel()`` only affects the
    run in progress.
    """

    def __init__(
        self,
        tree_store: TreeStore,
        storage: StorageService,
        bus: NotificationBus | None = None,
        *,
        source_reader: SourceReader | None = None,
    ) -> None:
        self.tree_store = tree_store
        self.storage = storage
        self.bus = bus
        self.source_reader = source_reader
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._cancel: Optional[threading.Event] = None
        self._running = False
        self._progress: Optional[SyncProgress] = None
        self._last_result: Optional[SyncResult] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def progress(self) -> Optional[SyncProgress]:
        return self._progress

    @property
    def last_result(self) -> Optional[SyncResult]:
        return self._last_result

    def status(self) -> SyncStatus:
        return SyncStatus(
            running=self.running, progress=self._progress, last_result=self._last_result
        )

    def start(self) -> str:
        """Start a background run; returns ``started`` or ``already_running``."""
        if self.source_reader is None:
            raise ConfigurationError("No OpenCode data directory is configured")
        with self._lock:
            if self._running:
                return "already_running"
            cancel = threading.Event()
            self._cancel = cancel
            self._running = True
            self._thread = threading.Thread(
                target=self._run, args=(cancel,), name="sync-engine", daemon=True
            )
            self._thread.start()
        return "started"

    def cancel(self) -> bool:
        """Signal the current run to stop; False when nothing is running."""
        with self._lock:
            if not self._running or self._cancel is None:
                return False
            self._cancel.set()
        logger.info("Sync cancellation requested")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the current run; True when no run is left executing."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            return not thread.is_alive()
        return True

    # Run -----------------------------------------------------------------

    def _run(self, cancel: threading.Event) -> None:
        start_time = time.time()
        try:
            result = self._execute(cancel)
        except Exception as exc:
            logger.exception("Sync run crashed")
            result = self._fail(f"Sync failed: {exc}")
        finally:
            with self._lock:
                self._running = False
        self._last_result = result
        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Sync finished",
            extra={
                "phase": result.phase,
                "mode": result.mode,
                "inserted": result.inserted,
                "updated": result.updated,
                "duration_ms": f"{duration_ms:.2f}",
            },
        )

    def _execute(self, cancel: threading.Event) -> SyncResult:
        reader = self.source_reader
        if reader is None:
            raise ConfigurationError("No OpenCode data directory is configured")
        self._emit("init", "Starting sync")

        try:
            sessions = reader.list_sessions()
        except ExplorerError as exc:
            return self._fail(exc.message, exc)

        working: Dict[str, MessageNode] = {}
        try:
            for index, session_id in enumerate(sessions):
                self._check(cancel)
                for message in reader.read_session(session_id):
                    working[message.id] = build_node(message)
                self._emit(
                    "reading",
                    f"Read session {session_id} ({len(working)} messages)",
                    index + 1,
                    len(sessions),
                )

            self._check(cancel)
            self._emit("building", "Linking parents and children", 0, len(working))
            normalize_children(working)
            self._emit("building", "Links resolved", len(working), len(working))
        except _Cancelled:
            return self._cancelled(None, 0, 0, len(working))

        try:
            mode: SyncMode = "full" if self.storage.is_empty() else "incremental"
        except DatabaseError as exc:
            return self._fail(exc.message, exc)

        nodes = sorted(working.values(), key=lambda node: (node.timestamp, node.id))
        counts = {"inserted": 0, "updated": 0}
        try:
            if mode == "full":
                self._write_full(nodes, counts, cancel)
            else:
                self._write_incremental(nodes, counts, cancel)
        except _Cancelled:
            self._reload()
            return self._cancelled(mode, counts["inserted"], counts["updated"], len(nodes))
        except DatabaseError as exc:
            self._reload()
            return self._fail(exc.message, exc, mode=mode, **counts)

        self._reload()
        message = (
            f"Sync complete ({mode}): {counts['inserted']} inserted, "
            f"{counts['updated']} updated"
        )
        self._emit("complete", message, len(nodes), len(nodes))
        return SyncResult(phase="complete", mode=mode, total=len(nodes), **counts)

    def _write_full(
        self, nodes: List[MessageNode], counts: Dict[str, int], cancel: threading.Event
    ) -> None:
        folder = self.tree_store.new_default_folder()
        self.storage.insert_folder(folder)
        for index, node in enumerate(nodes):
            self._check(cancel)
            try:
                self.storage.insert_node(folder.id, node)
                counts["inserted"] += 1
            except DatabaseError as exc:
                logger.warning("Skipping node %s during full sync: %s", node.id, exc)
            self._write_progress(index, len(nodes))

    def _write_incremental(
        self, nodes: List[MessageNode], counts: Dict[str, int], cancel: threading.Event
    ) -> None:
        folder_id = self.tree_store.default_folder_id
        if self.storage.get_folder(folder_id) is None:
            self.storage.insert_folder(self.tree_store.new_default_folder())

        for index, node in enumerate(nodes):
            self._check(cancel)
            try:
                if self.storage.merge_synced_fields(node):
                    counts["updated"] += 1
                else:
                    self.storage.insert_node(folder_id, node)
                    counts["inserted"] += 1
            except DatabaseError as exc:
                logger.warning("Skipping node %s during incremental sync: %s", node.id, exc)
            self._write_progress(index, len(nodes))

    # Helpers -------------------------------------------------------------

    def _check(self, cancel: threading.Event) -> None:
        if cancel.is_set():
            raise _Cancelled()

    def _write_progress(self, index: int, total: int) -> None:
        processed = index + 1
        if index == 0 or processed % PROGRESS_INTERVAL == 0 or processed == total:
            self._emit("writing", f"Writing messages ({processed}/{total})", processed, total)

    def _reload(self) -> None:
        try:
            self.tree_store.load_from_storage()
        except DatabaseError as exc:
            logger.error("Failed to reload tree after sync: %s", exc)

    def _emit(
        self,
        phase: SyncPhase,
        message: str,
        processed: int = 0,
        total: int = 0,
        error: Optional[str] = None,
    ) -> None:
        progress = SyncProgress(
            phase=phase, message=message, processed=processed, total=total, error=error
        )
        self._progress = progress
        if self.bus is not None:
            self.bus.publish_progress(progress.model_dump())

    def _cancelled(
        self, mode: Optional[SyncMode], inserted: int, updated: int, total: int
    ) -> SyncResult:
        self._emit("cancelled", "Sync cancelled", inserted + updated, total)
        logger.info("Sync cancelled", extra={"inserted": inserted, "updated": updated})
        return SyncResult(
            phase="cancelled", mode=mode, inserted=inserted, updated=updated, total=total
        )

    def _fail(
        self,
        message: str,
        exc: Optional[BaseException] = None,
        *,
        mode: Optional[SyncMode] = None,
        inserted: int = 0,
        updated: int = 0,
    ) -> SyncResult:
        logger.error("Sync failed: %s", message, exc_info=exc)
        self._emit("error", message, error=str(exc) if exc is not None else message)
        if self.bus is not None:
            self.bus.publish_error(message)
        return SyncResult(
            phase="error", mode=mode, inserted=inserted, updated=updated, error=message
        )


__all__ = ["SyncEngine", "PROGRESS_INTERVAL"]
