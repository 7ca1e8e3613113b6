"""HTTP API routes for search operations."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...models.node import NodeType
from ...models.search import RankedNode, SearchMode, SearchRequest
from ...services.search import SearchService
from ..dependencies import get_search_service

router = APIRouter(tags=["search"])


@router.post("/api/search", response_model=list[RankedNode])
def search_messages(
    request: SearchRequest, search: SearchService = Depends(get_search_service)
):
    """Rank nodes against a query (indexed by default, fuzzy fallback)."""
    return search.search(
        request.query,
        raw=request.raw,
        node_type=request.type,
        limit=request.limit,
        mode=request.mode,
    )


@router.get("/api/search", response_model=list[RankedNode])
def search_messages_get(
    q: str = Query(..., max_length=256),
    raw: bool = Query(False),
    type: Optional[NodeType] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    mode: Optional[SearchMode] = Query(None),
    search: SearchService = Depends(get_search_service),
):
    return search.search(q, raw=raw, node_type=type, limit=limit, mode=mode)


__all__ = ["router"]
