from datetime import datetime, timedelta, timezone
import time

import pytest

from backend.explorer.models.node import Folder, MessageNode
from backend.explorer.services.errors import NotFoundError, ValidationError
from backend.explorer.services.notifications import NotificationBus
from backend.explorer.services.tree_store import TreeStore, normalize_children

BASE_TIME = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


def _node(node_id: str, minutes: int = 0, **fields) -> MessageNode:
    return MessageNode(id=node_id, timestamp=BASE_TIME + timedelta(minutes=minutes), **fields)


def _assert_tree_invariant(store: TreeStore) -> None:
    for folder in store.list_folders():
        for node in folder.nodes.values():
            parent = folder.nodes.get(node.parent_id) if node.parent_id else None
            if parent is not None:
                assert parent.children.count(node.id) == 1, (node.id, parent.children)


@pytest.fixture()
def populated(tree_store: TreeStore) -> TreeStore:
    tree_store.add_folder(Folder(id="openchat", name="OpenChat History", created_at=BASE_TIME))
    tree_store.add_node("openchat", _node("root", 0, type="user"))
    tree_store.add_node("openchat", _node("a", 1, type="response", parent_id="root"))
    tree_store.add_node("openchat", _node("b", 2, type="response", parent_id="root"))
    tree_store.add_node("openchat", _node("c", 3, type="response", parent_id="root"))
    tree_store.add_node("openchat", _node("other", 4, type="user"))
    return tree_store


def _next_event(subscription, predicate, timeout: float = 2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        event = subscription.get(timeout=0.05)
        if event is not None and predicate(event):
            return event
    return None


def _reloaded(store: TreeStore) -> TreeStore:
    fresh = TreeStore(store.storage, None, config=store.config)
    fresh.load_from_storage()
    return fresh


def test_add_node_attaches_to_parent(populated: TreeStore) -> None:
    root = populated.get_node("root")

    assert root.children == ["a", "b", "c"]
    _assert_tree_invariant(populated)


def test_folder_lifecycle(tree_store: TreeStore) -> None:
    tree_store.add_folder(Folder(id="work", name="Work"))
    tree_store.add_node("work", _node("w1"))

    updated = tree_store.update_folder("work", name="Work items", color="#123456")

    assert updated.name == "Work items"
    assert "w1" in updated.nodes

    tree_store.delete_folder("work")
    assert tree_store.list_folders() == []
    assert tree_store.storage.is_empty()


def test_folder_errors(tree_store: TreeStore) -> None:
    tree_store.add_folder(Folder(id="work", name="Work"))

    with pytest.raises(ValidationError):
        tree_store.add_folder(Folder(id="work", name="Again"))
    with pytest.raises(NotFoundError):
        tree_store.update_folder("missing", name="x")
    with pytest.raises(NotFoundError):
        tree_store.delete_folder("missing")


def test_sentinel_add_creates_default_folder(tree_store: TreeStore) -> None:
    tree_store.add_node("all", _node("n1"))

    folder = tree_store.get_folder("openchat")

    assert folder.name == "OpenChat History"
    assert "n1" in folder.nodes
    assert _reloaded(tree_store).get_node("n1").id == "n1"


def test_node_ids_are_unique_across_folders(populated: TreeStore) -> None:
    populated.add_folder(Folder(id="work", name="Work"))

    with pytest.raises(ValidationError):
        populated.add_node("work", _node("a"))


def test_update_node_with_sentinel_and_unknown_id(populated: TreeStore) -> None:
    populated.update_node("", _node("a", 1, type="response", parent_id="root", summary="edited"))

    assert populated.get_node("a").summary == "edited"
    with pytest.raises(NotFoundError):
        populated.update_node("all", _node("ghost"))


def test_update_node_reparenting_moves_child(populated: TreeStore) -> None:
    populated.update_node("openchat", _node("c", 3, type="response", parent_id="other"))

    assert populated.get_node("root").children == ["a", "b"]
    assert populated.get_node("other").children == ["c"]
    _assert_tree_invariant(populated)


def test_delete_node_strips_parent_children(populated: TreeStore) -> None:
    populated.delete_node("all", "b")

    assert populated.get_node("root").children == ["a", "c"]
    with pytest.raises(NotFoundError):
        populated.get_node("b")
    assert _reloaded(populated).get_node("root").children == ["a", "c"]

    with pytest.raises(NotFoundError):
        populated.delete_node("all", "b")


def test_reorder_within_parent(populated: TreeStore) -> None:
    populated.reorder("openchat", "c", "root", 0)

    assert populated.get_node("root").children == ["c", "a", "b"]
    _assert_tree_invariant(populated)


def test_reorder_to_new_parent_at_index(populated: TreeStore) -> None:
    populated.add_node("openchat", _node("x", 5, parent_id="other"))

    moved = populated.reorder("all", "a", "other", 0)

    assert moved.parent_id == "other"
    assert populated.get_node("other").children[0] == "a"
    assert "a" not in populated.get_node("root").children
    reloaded = _reloaded(populated)
    assert reloaded.get_node("other").children == ["a", "x"]
    assert reloaded.get_node("a").parent_id == "other"
    _assert_tree_invariant(populated)


def test_reorder_out_of_range_index_appends(populated: TreeStore) -> None:
    populated.reorder("openchat", "a", "root", 99)
    assert populated.get_node("root").children == ["b", "c", "a"]

    populated.reorder("openchat", "b", "root", -1)
    assert populated.get_node("root").children == ["c", "a", "b"]


def test_reorder_to_root(populated: TreeStore) -> None:
    moved = populated.reorder("openchat", "a", "", 0)

    assert moved.parent_id is None
    assert populated.get_node("root").children == ["b", "c"]


def test_reorder_unknown_ids(populated: TreeStore) -> None:
    with pytest.raises(NotFoundError):
        populated.reorder("openchat", "ghost", "root", 0)
    with pytest.raises(NotFoundError):
        populated.reorder("openchat", "a", "ghost", 0)
    with pytest.raises(NotFoundError):
        populated.reorder("missing-folder", "a", "root", 0)
    with pytest.raises(ValidationError):
        populated.reorder("openchat", "a", "a", 0)


def test_set_locked_persists_and_rejects_unknown(populated: TreeStore) -> None:
    populated.set_locked("openchat", "a", True)

    assert populated.get_node("a").locked is True
    assert _reloaded(populated).get_node("a").locked is True
    with pytest.raises(NotFoundError):
        populated.set_locked("openchat", "ghost", True)


def test_list_all_nodes_dedups_by_id(populated: TreeStore) -> None:
    ids = [node.id for node in populated.list_all_nodes()]

    assert sorted(ids) == ["a", "b", "c", "other", "root"]
    assert len(ids) == len(set(ids))


def test_mutations_publish_full_state(populated: TreeStore, bus: NotificationBus) -> None:
    subscription = bus.subscribe()

    populated.set_flags("openchat", "a", expanded=True)

    def a_expanded(event) -> bool:
        nodes = event.data.get("openchat", {}).get("nodes", {})
        return bool(nodes.get("a", {}).get("expanded"))

    event = _next_event(subscription, a_expanded)
    assert event is not None
    assert event.type == "update"
    assert set(event.data["openchat"]["nodes"]) == {"root", "a", "b", "c", "other"}


def test_load_content_is_lazy_and_cached(populated: TreeStore, source) -> None:
    source.write_part("a", "prt_1", "line one")
    source.write_part("a", "prt_2", "line two")

    loaded = populated.load_content("a")

    assert loaded.content == "line one\nline two"
    assert loaded.has_loaded is True

    for path in (source.part_root / "a").iterdir():
        path.unlink()
    assert populated.load_content("a").content == "line one\nline two"
    assert _reloaded(populated).get_node("a").has_loaded is True


def test_load_content_without_parts_leaves_node_unloaded(populated: TreeStore) -> None:
    node = populated.load_content("b")

    assert node.has_loaded is False
    assert node.content == ""


def test_combine_content_skips_unknown_nodes(populated: TreeStore, source) -> None:
    source.write_part("a", "prt_1", "first")
    source.write_part("b", "prt_1", "second")

    combined, count = populated.combine_content(["a", "ghost", "b"])

    assert combined == "first\n\nsecond\n\n"
    assert count == 2


def test_export_and_import_state(populated: TreeStore, storage, bus, config) -> None:
    exported = populated.export_state()
    storage.delete_all_data()

    fresh = TreeStore(storage, bus, config=config)
    count = fresh.import_state(exported)

    assert count == 1
    assert fresh.get_node("root").children == ["a", "b", "c"]
    assert _reloaded(fresh).get_node("c").parent_id == "root"


def test_normalize_children_repairs_adjacency() -> None:
    nodes = {
        "p": _node("p", 0, children=["c2", "ghost", "c2", "stranger"]),
        "c1": _node("c1", 1, parent_id="p"),
        "c2": _node("c2", 2, parent_id="p"),
        "stranger": _node("stranger", 3, parent_id="elsewhere"),
    }

    normalize_children(nodes)

    assert nodes["p"].children == ["c2", "c1"]
