"""HTTP API routes for message node operations."""

from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends, Query

from ...models.node import (
    ALL_FOLDERS,
    CombineRequest,
    CombineResponse,
    Folder,
    MessageNode,
    NodeFlagsUpdate,
    NodeMutation,
    ReorderRequest,
)
from ...services.errors import ValidationError
from ...services.tree_store import TreeStore
from ..dependencies import get_tree_store

router = APIRouter(tags=["messages"])


@router.get("/api/messages", response_model=list[MessageNode])
def list_messages(tree: TreeStore = Depends(get_tree_store)):
    """All nodes across folders, deduplicated by id."""
    return tree.list_all_nodes()


@router.post("/api/messages", response_model=MessageNode, status_code=201)
def create_message(payload: NodeMutation, tree: TreeStore = Depends(get_tree_store)):
    return tree.add_node(payload.folder_id, payload.node)


@router.get("/api/messages/{node_id}", response_model=MessageNode)
def get_message(node_id: str, tree: TreeStore = Depends(get_tree_store)):
    """Return a node, loading its content from the source on first access."""
    return tree.load_content(node_id)


@router.put("/api/messages/{node_id}", response_model=MessageNode)
def update_message(
    node_id: str, payload: NodeMutation, tree: TreeStore = Depends(get_tree_store)
):
    if payload.node.id != node_id:
        raise ValidationError(f"Node id {payload.node.id} does not match path id {node_id}")
    return tree.update_node(payload.folder_id, payload.node)


@router.patch("/api/messages/{node_id}", response_model=MessageNode)
def update_message_flags(
    node_id: str, payload: NodeFlagsUpdate, tree: TreeStore = Depends(get_tree_store)
):
    """Set `locked`, `expanded` and/or `selected` on a node."""
    return tree.set_flags(
        payload.folder_id,
        node_id,
        locked=payload.locked,
        expanded=payload.expanded,
        selected=payload.selected,
    )


@router.delete("/api/messages/{node_id}")
def delete_message(
    node_id: str,
    folder_id: str = Query(ALL_FOLDERS, alias="folderId"),
    tree: TreeStore = Depends(get_tree_store),
):
    tree.delete_node(folder_id, node_id)
    return {"status": "deleted", "id": node_id}


@router.post("/api/reorder", response_model=MessageNode)
def reorder_message(payload: ReorderRequest, tree: TreeStore = Depends(get_tree_store)):
    return tree.reorder(
        payload.folder_id, payload.node_id, payload.new_parent_id, payload.new_index
    )


@router.post("/api/copy-selected", response_model=CombineResponse)
def copy_selected(payload: CombineRequest, tree: TreeStore = Depends(get_tree_store)):
    """Concatenate the content of the given nodes."""
    content, count = tree.combine_content(payload.node_ids)
    return CombineResponse(content=content, count=count)


@router.get("/api/export", response_model=Dict[str, Folder])
def export_state(tree: TreeStore = Depends(get_tree_store)):
    return tree.export_state()


@router.post("/api/import")
def import_state(payload: Dict[str, Folder], tree: TreeStore = Depends(get_tree_store)):
    count = tree.import_state(payload)
    return {"status": "imported", "count": count}


__all__ = ["router"]
