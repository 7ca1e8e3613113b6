"""SQLite-backed persistence for folders, nodes, tags and the text index."""

from __future__ import annotations

from datetime import datetime
import json
import logging
import re
import sqlite3
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.node import Folder, MessageNode
from .database import DatabaseService
from .errors import DatabaseError

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[0-9A-Za-z]+(?:\*)?")

NODE_COLUMNS = (
    "id, folder_id, type, content, summary, timestamp, parent_id, children, "
    "expanded, selected, session_id, has_loaded, locked"
)


def _prepare_match_query(query: str) -> str:
    """
    Sanitize user-supplied query text for FTS5 MATCH usage.

    - Extracts tokens comprised of alphanumeric characters.
    - Preserves a single trailing '*' to allow prefix searches.
    - Wraps each token in double quotes to neutralize MATCH operators.
    """
    sanitized_terms: List[str] = []

    for match in TOKEN_PATTERN.finditer(query or ""):
        token = match.group()
        has_prefix_star = token.endswith("*")
        core = token[:-1] if has_prefix_star else token
        if not core:
            continue
        sanitized_terms.append(f'"{core}"{"*" if has_prefix_star else ""}')

    if not sanitized_terms:
        raise ValueError("Search query must contain alphanumeric characters")

    return " ".join(sanitized_terms)


def _unique(values: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        if value not in seen:
            seen[value] = None
    return list(seen.keys())


def merge_children(existing: List[str], incoming: Iterable[str]) -> List[str]:
    """Existing order first, then incoming ids not yet present."""
    merged = list(existing)
    for child_id in incoming:
        if child_id not in merged:
            merged.append(child_id)
    return merged


def _row_to_folder(row: sqlite3.Row) -> Folder:
    return Folder(
        id=row["id"],
        name=row["name"],
        color=row["color"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_node(row: sqlite3.Row, tags: List[str]) -> MessageNode:
    children = json.loads(row["children"] or "[]")
    return MessageNode(
        id=row["id"],
        type=row["type"],
        content=row["content"] or "",
        summary=row["summary"] or "",
        timestamp=datetime.fromisoformat(row["timestamp"]),
        parent_id=row["parent_id"],
        children=children,
        tags=tags,
        expanded=bool(row["expanded"]),
        selected=bool(row["selected"]),
        locked=bool(row["locked"]),
        session_id=row["session_id"] or "",
        has_loaded=bool(row["has_loaded"]),
    )


class StorageService:
    """Durable mirror of the folder/node tree."""

    def __init__(self, db_service: DatabaseService | None = None) -> None:
        self.db_service = db_service or DatabaseService()

    # Folders -------------------------------------------------------------

    def insert_folder(self, folder: Folder) -> None:
        """Insert or replace folder metadata without touching its nodes."""
        with self.db_service.session() as conn:
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO folders (id, name, color, created_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                            name = excluded.name,
                            color = excluded.color
                        """,
                        (folder.id, folder.name, folder.color, folder.created_at.isoformat()),
                    )
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to write folder {folder.id}", exc) from exc

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        """Return a folder with its nodes, or None when it does not exist."""
        with self.db_service.session() as conn:
            try:
                row = conn.execute(
                    "SELECT id, name, color, created_at FROM folders WHERE id = ?",
                    (folder_id,),
                ).fetchone()
                if row is None:
                    return None
                folder = _row_to_folder(row)
                folder.nodes = self._load_nodes(conn, folder_id)
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to read folder {folder_id}", exc) from exc
        return folder

    def get_all_folders(self) -> List[Folder]:
        """Return every folder with its nodes, oldest folder first."""
        folders: List[Folder] = []
        with self.db_service.session() as conn:
            try:
                rows = conn.execute(
                    "SELECT id, name, color, created_at FROM folders ORDER BY created_at, id"
                ).fetchall()
                for row in rows:
                    try:
                        folder = _row_to_folder(row)
                    except (ValueError, TypeError) as exc:
                        logger.warning("Skipping malformed folder row %s: %s", row["id"], exc)
                        continue
                    folder.nodes = self._load_nodes(conn, folder.id)
                    folders.append(folder)
            except sqlite3.Error as exc:
                raise DatabaseError("Failed to read folders", exc) from exc
        return folders

    def delete_folder(self, folder_id: str) -> bool:
        """Delete a folder; its nodes and tags cascade."""
        with self.db_service.session() as conn:
            try:
                with conn:
                    cursor = conn.execute("DELETE FROM folders WHERE id = ?", (folder_id,))
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to delete folder {folder_id}", exc) from exc
        return cursor.rowcount > 0

    # Nodes ---------------------------------------------------------------

    def insert_node(self, folder_id: str, node: MessageNode) -> None:
        """Upsert a node row and replace its tag set in a single transaction."""
        with self.db_service.session() as conn:
            try:
                with conn:
                    self._upsert_node(conn, folder_id, node)
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to write node {node.id}", exc) from exc

    def update_node(self, folder_id: str, node: MessageNode) -> None:
        """Replace an existing node record (same transaction shape as insert)."""
        self.insert_node(folder_id, node)

    def insert_nodes(self, folder_id: str, nodes: Iterable[MessageNode]) -> Tuple[int, int]:
        """Write nodes one transaction each; failures are logged and skipped.

        Returns (written, failed).
        """
        written = failed = 0
        for node in nodes:
            try:
                self.insert_node(folder_id, node)
                written += 1
            except DatabaseError as exc:
                failed += 1
                logger.warning("Skipping node %s: %s", node.id, exc)
        return written, failed

    def merge_synced_fields(self, node: MessageNode) -> bool:
        """Apply source-owned fields (summary, tags, children) to a stored node.

        Flags and content are left as stored. Children are merged with the
        stored order inside the same transaction. Returns False when the node
        does not exist.
        """
        with self.db_service.session() as conn:
            try:
                with conn:
                    row = conn.execute(
                        "SELECT children FROM nodes WHERE id = ?", (node.id,)
                    ).fetchone()
                    if row is None:
                        return False
                    children = merge_children(json.loads(row["children"] or "[]"), node.children)
                    conn.execute(
                        "UPDATE nodes SET summary = ?, children = ? WHERE id = ?",
                        (node.summary, json.dumps(children), node.id),
                    )
                    self._replace_tags(conn, node.id, node.tags)
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to merge synced node {node.id}", exc) from exc
        return True

    def update_node_lock(self, node_id: str, locked: bool) -> bool:
        return self.update_node_flags(node_id, locked=locked)

    def update_node_flags(
        self,
        node_id: str,
        *,
        locked: Optional[bool] = None,
        expanded: Optional[bool] = None,
        selected: Optional[bool] = None,
    ) -> bool:
        """Update the session flags that are not None."""
        assignments: List[str] = []
        params: List[Any] = []
        for column, value in (("locked", locked), ("expanded", expanded), ("selected", selected)):
            if value is not None:
                assignments.append(f"{column} = ?")
                params.append(1 if value else 0)
        if not assignments:
            return False
        params.append(node_id)
        with self.db_service.session() as conn:
            try:
                with conn:
                    cursor = conn.execute(
                        f"UPDATE nodes SET {', '.join(assignments)} WHERE id = ?", params
                    )
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to update flags for node {node_id}", exc) from exc
        return cursor.rowcount > 0

    def update_node_content(self, node_id: str, content: str, has_loaded: bool = True) -> bool:
        with self.db_service.session() as conn:
            try:
                with conn:
                    cursor = conn.execute(
                        "UPDATE nodes SET content = ?, has_loaded = ? WHERE id = ?",
                        (content, 1 if has_loaded else 0, node_id),
                    )
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to update content for node {node_id}", exc) from exc
        return cursor.rowcount > 0

    def delete_node(self, node_id: str) -> bool:
        with self.db_service.session() as conn:
            try:
                with conn:
                    cursor = conn.execute("DELETE FROM nodes WHERE id = ?", (node_id,))
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to delete node {node_id}", exc) from exc
        return cursor.rowcount > 0

    def get_nodes_for_folder(self, folder_id: str) -> Dict[str, MessageNode]:
        with self.db_service.session() as conn:
            try:
                return self._load_nodes(conn, folder_id)
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to read nodes for folder {folder_id}", exc) from exc

    def get_node(self, node_id: str) -> Optional[Tuple[str, MessageNode]]:
        """Return (folder_id, node) for a node id, or None."""
        with self.db_service.session() as conn:
            try:
                row = conn.execute(
                    f"SELECT {NODE_COLUMNS} FROM nodes WHERE id = ?", (node_id,)
                ).fetchone()
                if row is None:
                    return None
                tags = [
                    tag_row["tag"]
                    for tag_row in conn.execute(
                        "SELECT tag FROM tags WHERE node_id = ? ORDER BY id", (node_id,)
                    )
                ]
            except sqlite3.Error as exc:
                raise DatabaseError(f"Failed to read node {node_id}", exc) from exc
        return row["folder_id"], _row_to_node(row, tags)

    def count_nodes(self) -> int:
        with self.db_service.session() as conn:
            try:
                row = conn.execute("SELECT COUNT(*) AS count FROM nodes").fetchone()
            except sqlite3.Error as exc:
                raise DatabaseError("Failed to count nodes", exc) from exc
        return int(row["count"])

    def is_empty(self) -> bool:
        return self.count_nodes() == 0

    def delete_all_data(self) -> None:
        with self.db_service.session() as conn:
            try:
                with conn:
                    conn.execute("DELETE FROM tags")
                    conn.execute("DELETE FROM nodes")
                    conn.execute("DELETE FROM folders")
            except sqlite3.Error as exc:
                raise DatabaseError("Failed to clear database", exc) from exc

    # Search --------------------------------------------------------------

    def search_nodes(
        self,
        query: str,
        *,
        node_type: Optional[str] = None,
        limit: int = 50,
        raw: bool = False,
    ) -> List[Dict[str, Any]]:
        """Full-text search ordered by bm25 rank (lower is better).

        Raises ValueError when the query has no searchable tokens.
        """
        start_time = time.time()
        match_query = _prepare_match_query(query)
        if raw:
            match_query = f"{{content type}} : ({match_query})"

        sql = """
            SELECT
                n.id,
                n.type,
                n.summary,
                n.timestamp,
                n.parent_id,
                f.id AS folder_id,
                f.name AS folder_name,
                f.color AS folder_color,
                bm25(nodes_fts) AS score
            FROM nodes_fts
            JOIN nodes n ON n.id = nodes_fts.node_id
            JOIN folders f ON f.id = n.folder_id
            WHERE nodes_fts MATCH ?
        """
        params: List[Any] = [match_query]
        if node_type:
            sql += " AND n.type = ?"
            params.append(node_type)
        sql += " ORDER BY score ASC LIMIT ?"
        params.append(limit)

        with self.db_service.session() as conn:
            try:
                rows = conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise DatabaseError("Full-text search failed", exc) from exc

        results = [
            {
                "id": row["id"],
                "type": row["type"],
                "summary": row["summary"],
                "timestamp": row["timestamp"],
                "parent_id": row["parent_id"],
                "folder_id": row["folder_id"],
                "folder_name": row["folder_name"],
                "folder_color": row["folder_color"],
                "rank": float(row["score"]),
            }
            for row in rows
        ]
        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "Indexed search completed",
            extra={
                "query": query,
                "results": len(results),
                "duration_ms": f"{duration_ms:.2f}",
            },
        )
        return results

    # Internals -----------------------------------------------------------

    def _upsert_node(self, conn: sqlite3.Connection, folder_id: str, node: MessageNode) -> None:
        conn.execute(
            f"""
            INSERT INTO nodes ({NODE_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                folder_id = excluded.folder_id,
                type = excluded.type,
                content = excluded.content,
                summary = excluded.summary,
                timestamp = excluded.timestamp,
                parent_id = excluded.parent_id,
                children = excluded.children,
                expanded = excluded.expanded,
                selected = excluded.selected,
                session_id = excluded.session_id,
                has_loaded = excluded.has_loaded,
                locked = excluded.locked
            """,
            (
                node.id,
                folder_id,
                node.type,
                node.content,
                node.summary,
                node.timestamp.isoformat(),
                node.parent_id,
                json.dumps(node.children),
                1 if node.expanded else 0,
                1 if node.selected else 0,
                node.session_id,
                1 if node.has_loaded else 0,
                1 if node.locked else 0,
            ),
        )
        self._replace_tags(conn, node.id, node.tags)

    def _replace_tags(self, conn: sqlite3.Connection, node_id: str, tags: Iterable[str]) -> None:
        conn.execute("DELETE FROM tags WHERE node_id = ?", (node_id,))
        unique_tags = _unique(tags)
        if unique_tags:
            conn.executemany(
                "INSERT INTO tags (node_id, tag) VALUES (?, ?)",
                [(node_id, tag) for tag in unique_tags],
            )

    def _load_nodes(self, conn: sqlite3.Connection, folder_id: str) -> Dict[str, MessageNode]:
        tags_by_node: Dict[str, List[str]] = {}
        for row in conn.execute(
            """
            SELECT t.node_id, t.tag
            FROM tags t
            JOIN nodes n ON n.id = t.node_id
            WHERE n.folder_id = ?
            ORDER BY t.id
            """,
            (folder_id,),
        ):
            tags_by_node.setdefault(row["node_id"], []).append(row["tag"])

        nodes: Dict[str, MessageNode] = {}
        for row in conn.execute(
            f"SELECT {NODE_COLUMNS} FROM nodes WHERE folder_id = ? ORDER BY timestamp, id",
            (folder_id,),
        ):
            try:
                nodes[row["id"]] = _row_to_node(row, tags_by_node.get(row["id"], []))
            except (ValueError, TypeError) as exc:
                logger.warning("Skipping malformed node row %s: %s", row["id"], exc)
        return nodes


__all__ = ["StorageService", "merge_children", "_prepare_match_query"]
