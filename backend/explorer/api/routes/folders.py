"""HTTP API routes for folder operations."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from ...models.node import Folder, FolderCreate, FolderUpdate
from ...services.tree_store import TreeStore
from ..dependencies import get_tree_store

router = APIRouter(prefix="/api/folders", tags=["folders"])


@router.get("", response_model=list[Folder])
def list_folders(tree: TreeStore = Depends(get_tree_store)):
    """List every folder with its nodes, oldest first."""
    return tree.list_folders()


@router.get("/{folder_id}", response_model=Folder)
def get_folder(folder_id: str, tree: TreeStore = Depends(get_tree_store)):
    return tree.get_folder(folder_id)


@router.post("", response_model=Folder, status_code=201)
def create_folder(payload: FolderCreate, tree: TreeStore = Depends(get_tree_store)):
    folder = Folder(id=payload.id or uuid.uuid4().hex, name=payload.name, color=payload.color)
    return tree.add_folder(folder)


@router.put("/{folder_id}", response_model=Folder)
def update_folder(
    folder_id: str, payload: FolderUpdate, tree: TreeStore = Depends(get_tree_store)
):
    return tree.update_folder(folder_id, name=payload.name, color=payload.color)


@router.delete("/{folder_id}")
def delete_folder(folder_id: str, tree: TreeStore = Depends(get_tree_store)):
    """Delete a folder and every node it holds."""
    tree.delete_folder(folder_id)
    return {"status": "deleted", "id": folder_id}


__all__ = ["router"]
