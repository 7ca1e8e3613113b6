"""Rank nodes against a query via the FTS index or an in-memory fuzzy scorer."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from ..models.node import MessageNode
from ..models.search import RankedNode, SearchMode
from .classifier import is_auto_node
from .config import AppConfig, get_config
from .errors import ValidationError
from .storage import StorageService
from .tree_store import TreeStore

logger = logging.getLogger(__name__)

# (substring weight, exact weight)
CONTENT_WEIGHTS = (100.0, 150.0)
SUMMARY_WEIGHTS = (60.0, 90.0)
TYPE_WEIGHTS = (30.0, 50.0)
TAG_WEIGHTS = (20.0, 35.0)


def score_match(query: str, text: str) -> Tuple[float, bool]:
    """Score lowercase `query` against lowercase `text`.

    Returns (score, exact): 2.0 for an exact match, 1.0 for a substring,
    ``0.5 / (1 + gap)`` for an in-order subsequence where gap is the longest
    run of skipped characters between two matched characters, else 0.0.
    """
    if not query:
        return 0.0, False
    if query in text:
        if query == text:
            return 2.0, True
        return 1.0, True

    query_index = 0
    gap = 0
    longest_gap = 0
    for char in text:
        if query_index == len(query):
            break
        if char == query[query_index]:
            query_index += 1
            longest_gap = max(longest_gap, gap)
            gap = 0
        elif query_index > 0:
            gap += 1

    if query_index == len(query):
        return 0.5 / (1.0 + longest_gap), False
    return 0.0, False


def _weighted(query: str, text: str, weights: Tuple[float, float]) -> float:
    score, exact = score_match(query, text.lower())
    if score <= 0:
        return 0.0
    return score * (weights[1] if exact else weights[0])


def calculate_match_score(query: str, node: MessageNode, raw: bool = False) -> Tuple[float, List[str]]:
    """Weighted score across content, summary, type and the first matching tag."""
    query = query.lower()
    total = 0.0
    matched: List[str] = []

    content_score = _weighted(query, node.content, CONTENT_WEIGHTS)
    if content_score:
        total += content_score
        matched.append("content")

    if not raw:
        summary_score = _weighted(query, node.summary, SUMMARY_WEIGHTS)
        if summary_score:
            total += summary_score
            matched.append("summary")

    type_score = _weighted(query, node.type, TYPE_WEIGHTS)
    if type_score:
        total += type_score
        matched.append("type")

    for tag in node.tags:
        tag_score = _weighted(query, tag, TAG_WEIGHTS)
        if tag_score:
            total += tag_score
            matched.append("tag")
            break

    return total, matched


class SearchService:
    """Indexed search with an in-memory fuzzy fallback."""

    def __init__(
        self,
        tree_store: TreeStore,
        storage: StorageService,
        config: AppConfig | None = None,
    ) -> None:
        self.tree_store = tree_store
        self.storage = storage
        self.config = config or get_config()

    def search(
        self,
        query: str,
        *,
        raw: bool = False,
        node_type: Optional[str] = None,
        limit: Optional[int] = None,
        mode: Optional[SearchMode] = None,
    ) -> List[RankedNode]:
        if limit is None:
            limit = self.config.search_limit
        if limit < 1:
            raise ValidationError("Search limit must be at least 1")
        if not query or not query.strip():
            return []

        mode = mode or self.config.search_mode
        if mode == "indexed":
            try:
                return self.search_indexed(query, raw=raw, node_type=node_type, limit=limit)
            except ValueError:
                logger.debug("Query %r has no indexable tokens; using fuzzy search", query)
        return self.search_fuzzy(query, raw=raw, node_type=node_type, limit=limit)

    def search_indexed(
        self, query: str, *, raw: bool = False, node_type: Optional[str] = None, limit: int = 50
    ) -> List[RankedNode]:
        rows = self.storage.search_nodes(query, node_type=node_type, limit=limit, raw=raw)
        return [RankedNode(**row) for row in rows]

    def search_fuzzy(
        self, query: str, *, raw: bool = False, node_type: Optional[str] = None, limit: int = 50
    ) -> List[RankedNode]:
        query = query.strip()
        folders = {folder.id: folder for folder in self.tree_store.list_folders()}
        ranked: List[Tuple[float, MessageNode, List[str], str]] = []
        for folder in folders.values():
            for node in folder.nodes.values():
                if is_auto_node(node):
                    continue
                if node_type and node.type != node_type:
                    continue
                score, matched = calculate_match_score(query, node, raw)
                if score > 0:
                    ranked.append((score, node, matched, folder.id))

        ranked.sort(key=lambda item: (-item[0], item[1].id))
        results: List[RankedNode] = []
        seen = set()
        for score, node, matched, folder_id in ranked:
            if node.id in seen:
                continue
            seen.add(node.id)
            folder = folders[folder_id]
            results.append(
                RankedNode(
                    id=node.id,
                    type=node.type,
                    summary=node.summary,
                    timestamp=node.timestamp,
                    parent_id=node.parent_id,
                    folder_id=folder_id,
                    folder_name=folder.name,
                    folder_color=folder.color,
                    rank=-score,
                    score=score,
                    matches=matched,
                )
            )
            if len(results) >= limit:
                break
        return results


__all__ = [
    "SearchService",
    "score_match",
    "calculate_match_score",
    "CONTENT_WEIGHTS",
    "SUMMARY_WEIGHTS",
    "TYPE_WEIGHTS",
    "TAG_WEIGHTS",
]
