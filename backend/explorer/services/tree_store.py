"""In-memory folder/node tree with storage write-through and live publishing."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from ..models.node import Folder, MessageNode, is_all_folders
from .config import AppConfig, get_config
from .errors import NotFoundError, ValidationError
from .locks import ReadWriteLock
from .notifications import NotificationBus
from .source_reader import SourceReader
from .storage import StorageService

logger = logging.getLogger(__name__)

FolderState = Dict[str, Any]


def normalize_children(nodes: Mapping[str, MessageNode]) -> None:
    """Rebuild parent/children adjacency in place.

    Stored order is kept for children whose ``parent_id`` still points at the
    parent. Unknown ids, duplicates and children claimed by another parent are
    dropped. Children missing from their parent's list are appended in
    timestamp order.
    """
    for node in nodes.values():
        seen: Set[str] = set()
        kept: List[str] = []
        for child_id in node.children:
            child = nodes.get(child_id)
            if child_id in seen or child is None or child.parent_id != node.id:
                continue
            seen.add(child_id)
            kept.append(child_id)
        node.children = kept

    for node in sorted(nodes.values(), key=lambda item: (item.timestamp, item.id)):
        parent = nodes.get(node.parent_id) if node.parent_id else None
        if parent is not None and node.id not in parent.children:
            parent.children.append(node.id)


class TreeStore:
    """Authoritative folder map guarded by one readers/writer lock.

    Every mutation updates memory, writes storage, then publishes the full
    state as an ``update`` event.
    """

    def __init__(
        self,
        storage: StorageService,
        bus: NotificationBus | None = None,
        *,
        config: AppConfig | None = None,
        source_reader: SourceReader | None = None,
    ) -> None:
        self.storage = storage
        self.bus = bus
        self.config = config or get_config()
        self.source_reader = source_reader
        self._folders: Dict[str, Folder] = {}
        self._lock = ReadWriteLock()

    @property
    def default_folder_id(self) -> str:
        return self.config.default_folder_id

    def new_default_folder(self) -> Folder:
        return Folder(
            id=self.config.default_folder_id,
            name=self.config.default_folder_name,
            color=self.config.default_folder_color,
        )

    # Reads ---------------------------------------------------------------

    def list_folders(self) -> List[Folder]:
        with self._lock.read_lock():
            return [folder.model_copy(deep=True) for folder in self._ordered_folders()]

    def get_folder(self, folder_id: str) -> Folder:
        with self._lock.read_lock():
            return self._require_folder(folder_id).model_copy(deep=True)

    def list_all_nodes(self) -> List[MessageNode]:
        """Every node once; the oldest folder wins when an id repeats."""
        with self._lock.read_lock():
            seen: Dict[str, MessageNode] = {}
            for folder in self._ordered_folders():
                for node_id, node in folder.nodes.items():
                    if node_id not in seen:
                        seen[node_id] = node.model_copy(deep=True)
            return list(seen.values())

    def get_node(self, node_id: str) -> MessageNode:
        with self._lock.read_lock():
            for folder in self._ordered_folders():
                node = folder.nodes.get(node_id)
                if node is not None:
                    return node.model_copy(deep=True)
        raise NotFoundError(f"Node not found: {node_id}")

    def snapshot(self) -> FolderState:
        """JSON-ready full state keyed by folder id."""
        with self._lock.read_lock():
            return self._snapshot_unlocked()

    # Folder mutations ----------------------------------------------------

    def add_folder(self, folder: Folder) -> Folder:
        with self._lock.write_lock():
            if folder.id in self._folders:
                raise ValidationError(f"Folder already exists: {folder.id}")
            created = folder.model_copy(deep=True)
            for node_id in created.nodes:
                self._ensure_unique(node_id, created.id)
            normalize_children(created.nodes)
            self._folders[created.id] = created
            self.storage.insert_folder(created)
            self.storage.insert_nodes(created.id, created.nodes.values())
            result = created.model_copy(deep=True)
            state = self._snapshot_unlocked()
        self._publish(state)
        return result

    def update_folder(
        self, folder_id: str, *, name: Optional[str] = None, color: Optional[str] = None
    ) -> Folder:
        with self._lock.write_lock():
            folder = self._require_folder(folder_id)
            if name is not None:
                folder.name = name
            if color is not None:
                folder.color = color
            self.storage.insert_folder(folder)
            result = folder.model_copy(deep=True)
            state = self._snapshot_unlocked()
        self._publish(state)
        return result

    def delete_folder(self, folder_id: str) -> None:
        with self._lock.write_lock():
            self._require_folder(folder_id)
            del self._folders[folder_id]
            self.storage.delete_folder(folder_id)
            state = self._snapshot_unlocked()
        self._publish(state)
        logger.info("Folder deleted", extra={"folder_id": folder_id})

    # Node mutations ------------------------------------------------------

    def add_node(self, folder_id: str, node: MessageNode) -> MessageNode:
        """Insert (or replace) a node in a folder or, for the sentinel, where it lives."""
        with self._lock.write_lock():
            if is_all_folders(folder_id):
                targets = self._folders_containing(node.id)
                if not targets:
                    targets = [self._ensure_default_folder()]
            else:
                targets = [self._require_folder(folder_id)]
                self._ensure_unique(node.id, folder_id)
            for folder in targets:
                self._place_node(folder, node)
            result = targets[0].nodes[node.id].model_copy(deep=True)
            state = self._snapshot_unlocked()
        self._publish(state)
        return result

    def update_node(self, folder_id: str, node: MessageNode) -> MessageNode:
        with self._lock.write_lock():
            targets = self._targets(folder_id, node.id)
            for folder in targets:
                self._place_node(folder, node)
            result = targets[0].nodes[node.id].model_copy(deep=True)
            state = self._snapshot_unlocked()
        self._publish(state)
        return result

    def delete_node(self, folder_id: str, node_id: str) -> None:
        with self._lock.write_lock():
            targets = self._targets(folder_id, node_id)
            for folder in targets:
                del folder.nodes[node_id]
                dirty = []
                for other in folder.nodes.values():
                    if node_id in other.children:
                        other.children = [child for child in other.children if child != node_id]
                        dirty.append(other.id)
                self._persist(folder, dirty)
            self.storage.delete_node(node_id)
            state = self._snapshot_unlocked()
        self._publish(state)

    def reorder(
        self,
        folder_id: str,
        node_id: str,
        new_parent_id: Optional[str],
        new_index: int,
    ) -> MessageNode:
        """Move a node under `new_parent_id` (root when empty) at `new_index`.

        An index outside ``0..len(children)`` appends.
        """
        new_parent_id = new_parent_id or None
        if new_parent_id == node_id:
            raise ValidationError("A node cannot be its own parent")
        with self._lock.write_lock():
            targets = self._targets(folder_id, node_id)
            for folder in targets:
                if new_parent_id is not None and new_parent_id not in folder.nodes:
                    raise NotFoundError(f"Parent node not found: {new_parent_id}")

            for folder in targets:
                node = folder.nodes[node_id]
                dirty = [node_id]
                old_parent = folder.nodes.get(node.parent_id) if node.parent_id else None
                if old_parent is not None:
                    old_parent.children = [c for c in old_parent.children if c != node_id]
                    dirty.append(old_parent.id)
                node.parent_id = new_parent_id
                if new_parent_id is not None:
                    siblings = folder.nodes[new_parent_id].children
                    if 0 <= new_index <= len(siblings):
                        siblings.insert(new_index, node_id)
                    else:
                        siblings.append(node_id)
                    dirty.append(new_parent_id)
                self._persist(folder, dirty)
            result = targets[0].nodes[node_id].model_copy(deep=True)
            state = self._snapshot_unlocked()
        self._publish(state)
        return result

    def set_locked(self, folder_id: str, node_id: str, locked: bool) -> MessageNode:
        return self.set_flags(folder_id, node_id, locked=locked)

    def set_flags(
        self,
        folder_id: str,
        node_id: str,
        *,
        locked: Optional[bool] = None,
        expanded: Optional[bool] = None,
        selected: Optional[bool] = None,
    ) -> MessageNode:
        with self._lock.write_lock():
            targets = self._targets(folder_id, node_id)
            for folder in targets:
                node = folder.nodes[node_id]
                if locked is not None:
                    node.locked = locked
                if expanded is not None:
                    node.expanded = expanded
                if selected is not None:
                    node.selected = selected
            self.storage.update_node_flags(
                node_id, locked=locked, expanded=expanded, selected=selected
            )
            result = targets[0].nodes[node_id].model_copy(deep=True)
            state = self._snapshot_unlocked()
        self._publish(state)
        return result

    def load_content(self, node_id: str) -> MessageNode:
        """Return a node with its content, reading parts from the source on first access."""
        node = self.get_node(node_id)
        if node.has_loaded or self.source_reader is None:
            return node

        content = self.source_reader.read_content(node_id)
        if content is None:
            return node

        with self._lock.write_lock():
            targets = self._folders_containing(node_id)
            if not targets:
                raise NotFoundError(f"Node not found: {node_id}")
            for folder in targets:
                cached = folder.nodes[node_id]
                if not cached.has_loaded:
                    cached.content = content
                    cached.has_loaded = True
            self.storage.update_node_content(node_id, content, True)
            result = targets[0].nodes[node_id].model_copy(deep=True)
            state = self._snapshot_unlocked()
        self._publish(state)
        return result

    def combine_content(self, node_ids: Iterable[str]) -> Tuple[str, int]:
        """Concatenate the contents of the given nodes, each followed by a blank line.

        Returns (text, number of nodes combined); unknown ids are skipped.
        """
        combined = ""
        count = 0
        for node_id in node_ids:
            try:
                node = self.load_content(node_id)
            except NotFoundError:
                continue
            combined += node.content + "\n\n"
            count += 1
        return combined, count

    # Bulk ----------------------------------------------------------------

    def load_from_storage(self) -> int:
        """Replace memory with the stored tree and publish it; returns the node count."""
        folders = self.storage.get_all_folders()
        with self._lock.write_lock():
            self._folders = {}
            for folder in folders:
                normalize_children(folder.nodes)
                self._folders[folder.id] = folder
            count = sum(len(folder.nodes) for folder in folders)
            state = self._snapshot_unlocked()
        self._publish(state)
        logger.info(
            "Tree loaded from storage",
            extra={"folders": len(folders), "nodes": count},
        )
        return count

    def export_state(self) -> Dict[str, Folder]:
        with self._lock.read_lock():
            return {
                folder.id: folder.model_copy(deep=True) for folder in self._ordered_folders()
            }

    def import_state(self, folders: Mapping[str, Folder]) -> int:
        """Upsert folders and their nodes; returns the number of folders imported."""
        with self._lock.write_lock():
            for key, incoming in folders.items():
                for node_id in incoming.nodes:
                    self._ensure_unique(node_id, incoming.id or key)

            for key, incoming in folders.items():
                folder_id = incoming.id or key
                folder = self._folders.get(folder_id)
                if folder is None:
                    folder = incoming.model_copy(deep=True, update={"nodes": {}})
                    self._folders[folder_id] = folder
                else:
                    folder.name = incoming.name
                    folder.color = incoming.color
                for node_id, node in incoming.nodes.items():
                    folder.nodes[node_id] = node.model_copy(deep=True)
                normalize_children(folder.nodes)
                self.storage.insert_folder(folder)
                self.storage.insert_nodes(folder.id, folder.nodes.values())
            state = self._snapshot_unlocked()
        self._publish(state)
        return len(folders)

    # Internals -----------------------------------------------------------

    def _ordered_folders(self) -> List[Folder]:
        return sorted(self._folders.values(), key=lambda folder: (folder.created_at, folder.id))

    def _snapshot_unlocked(self) -> FolderState:
        return {
            folder.id: folder.model_dump(mode="json", by_alias=True)
            for folder in self._ordered_folders()
        }

    def _publish(self, state: FolderState) -> None:
        if self.bus is not None:
            self.bus.publish_update(state)

    def _require_folder(self, folder_id: str) -> Folder:
        folder = self._folders.get(folder_id)
        if folder is None:
            raise NotFoundError(f"Folder not found: {folder_id}")
        return folder

    def _folders_containing(self, node_id: str) -> List[Folder]:
        return [folder for folder in self._ordered_folders() if node_id in folder.nodes]

    def _targets(self, folder_id: str, node_id: str) -> List[Folder]:
        """Folders an existing-node operation applies to; NotFound when none."""
        if is_all_folders(folder_id):
            targets = self._folders_containing(node_id)
        else:
            folder = self._require_folder(folder_id)
            targets = [folder] if node_id in folder.nodes else []
        if not targets:
            raise NotFoundError(f"Node not found: {node_id}")
        return targets

    def _ensure_unique(self, node_id: str, folder_id: str) -> None:
        for folder in self._folders.values():
            if folder.id != folder_id and node_id in folder.nodes:
                raise ValidationError(
                    f"Node {node_id} already exists in folder {folder.id}"
                )

    def _ensure_default_folder(self) -> Folder:
        folder = self._folders.get(self.default_folder_id)
        if folder is None:
            folder = self.new_default_folder()
            self._folders[folder.id] = folder
            self.storage.insert_folder(folder)
        return folder

    def _place_node(self, folder: Folder, node: MessageNode) -> None:
        """Store a copy of `node` in `folder` and repair the links around it."""
        if node.parent_id == node.id:
            raise ValidationError("A node cannot be its own parent")
        placed = node.model_copy(deep=True)
        dirty = [placed.id]
        previous = folder.nodes.get(placed.id)
        if previous is not None and previous.parent_id != placed.parent_id:
            old_parent = folder.nodes.get(previous.parent_id) if previous.parent_id else None
            if old_parent is not None:
                old_parent.children = [c for c in old_parent.children if c != placed.id]
                dirty.append(old_parent.id)
        folder.nodes[placed.id] = placed

        kept: List[str] = []
        for child_id in placed.children:
            child = folder.nodes.get(child_id)
            if child is not None and child.parent_id == placed.id and child_id not in kept:
                kept.append(child_id)
        for other in sorted(folder.nodes.values(), key=lambda item: (item.timestamp, item.id)):
            if other.parent_id == placed.id and other.id not in kept:
                kept.append(other.id)
        placed.children = kept

        parent = folder.nodes.get(placed.parent_id) if placed.parent_id else None
        if parent is not None and placed.id not in parent.children:
            parent.children.append(placed.id)
            dirty.append(parent.id)
        self._persist(folder, dirty)

    def _persist(self, folder: Folder, node_ids: Iterable[str]) -> None:
        for node_id in dict.fromkeys(node_ids):
            node = folder.nodes.get(node_id)
            if node is not None:
                self.storage.insert_node(folder.id, node)


__all__ = ["TreeStore", "normalize_children"]
