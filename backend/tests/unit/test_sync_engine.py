import threading
import time
from typing import List

import pytest

from backend.explorer.services.errors import ConfigurationError
from backend.explorer.services.notifications import NotificationBus
from backend.explorer.services.source_reader import SourceReader
from backend.explorer.services.storage import StorageService, merge_children
from backend.explorer.services.sync_engine import SyncEngine
from backend.explorer.services.tree_store import TreeStore


def _engine(tree_store: TreeStore, storage: StorageService, bus: NotificationBus, reader) -> SyncEngine:
    return SyncEngine(tree_store, storage, bus, source_reader=reader)


def _run(engine: SyncEngine):
    assert engine.start() == "started"
    assert engine.wait(10)
    return engine.last_result


def _write_scenario(source) -> None:
    source.write_message("ses_a", "m1", "user", created=1_000, summary="Continue the task")
    source.write_message("ses_a", "m2", "assistant", created=2_000, parent_id="m1")


def test_full_sync_scenario(source, tree_store, storage, bus, reader) -> None:
    _write_scenario(source)

    result = _run(_engine(tree_store, storage, bus, reader))

    assert result.phase == "complete"
    assert result.mode == "full"
    assert result.inserted == 2
    m1 = tree_store.get_node("m1")
    m2 = tree_store.get_node("m2")
    assert m1.type == "auto"
    assert "auto-generated" in m1.tags
    assert m2.type == "response"
    assert m2.summary == "AI response"
    assert m1.children == ["m2"]
    assert tree_store.get_folder("openchat").name == "OpenChat History"


def test_full_sync_is_idempotent(source, tree_store, storage, bus, reader) -> None:
    _write_scenario(source)
    source.write_message("ses_b", "m3", "user", created=3_000, summary="Add tests")
    engine = _engine(tree_store, storage, bus, reader)

    _run(engine)
    first = {n.id: (n.summary, n.tags, n.children) for n in tree_store.list_all_nodes()}
    second_result = _run(engine)
    second = {n.id: (n.summary, n.tags, n.children) for n in tree_store.list_all_nodes()}

    assert second_result.mode == "incremental"
    assert second_result.updated == 3
    assert second_result.inserted == 0
    assert first == second


def test_incremental_sync_preserves_local_state(source, tree_store, storage, bus, reader) -> None:
    _write_scenario(source)
    engine = _engine(tree_store, storage, bus, reader)
    _run(engine)

    source.write_part("m2", "prt_1", "cached body")
    tree_store.load_content("m2")
    tree_store.set_flags("openchat", "m2", locked=True, expanded=True, selected=True)
    source.write_message("ses_a", "m2", "assistant", created=2_000, parent_id="m1", summary="Renamed")
    source.write_message("ses_a", "m4", "assistant", created=4_000, parent_id="m1")

    result = _run(engine)

    assert result.inserted == 1
    assert result.updated == 2
    m2 = tree_store.get_node("m2")
    assert m2.summary == "Renamed"
    assert m2.locked and m2.expanded and m2.selected
    assert m2.content == "cached body"
    assert m2.has_loaded
    assert tree_store.get_node("m1").children == ["m2", "m4"]


def test_incremental_sync_keeps_edits_made_while_writing(
    source, tree_store, storage, bus, reader, monkeypatch
) -> None:
    _write_scenario(source)
    engine = _engine(tree_store, storage, bus, reader)
    _run(engine)
    source.write_message("ses_a", "m2", "assistant", created=2_000, parent_id="m1", summary="Renamed")
    source.write_part("m2", "prt_1", "cached body")

    merge = storage.merge_synced_fields

    def merge_after_local_edit(node):
        if node.id == "m1":
            tree_store.set_flags("openchat", "m2", locked=True, selected=True)
            tree_store.load_content("m2")
        return merge(node)

    monkeypatch.setattr(storage, "merge_synced_fields", merge_after_local_edit)
    result = _run(engine)

    assert result.phase == "complete"
    m2 = tree_store.get_node("m2")
    assert m2.summary == "Renamed"
    assert m2.locked and m2.selected
    assert m2.content == "cached body"
    assert m2.has_loaded


def test_incremental_sync_keeps_manual_child_order(source, tree_store, storage, bus, reader) -> None:
    source.write_message("ses_a", "p", "user", created=1_000, summary="Plan")
    source.write_message("ses_a", "c1", "assistant", created=2_000, parent_id="p")
    source.write_message("ses_a", "c2", "assistant", created=3_000, parent_id="p")
    engine = _engine(tree_store, storage, bus, reader)
    _run(engine)

    tree_store.reorder("openchat", "c2", "p", 0)
    _run(engine)

    assert tree_store.get_node("p").children == ["c2", "c1"]


def test_start_while_running_reports_already_running(source, tree_store, storage, bus) -> None:
    _write_scenario(source)
    release = threading.Event()

    class SlowReader(SourceReader):
        def read_session(self, session_id):
            release.wait(5)
            return super().read_session(session_id)

    engine = _engine(tree_store, storage, bus, SlowReader(source.root))
    assert engine.start() == "started"
    assert engine.start() == "already_running"
    assert engine.running

    release.set()
    assert engine.wait(10)
    assert engine.last_result.phase == "complete"
    assert not engine.running


def test_cancel_stops_before_unstarted_sessions(source, tree_store, storage, bus) -> None:
    source.write_message("ses_a", "a1", "user", created=1_000)
    source.write_message("ses_b", "b1", "user", created=2_000)
    source.write_message("ses_c", "c1", "user", created=3_000)
    seen: List[str] = []
    holder = {}

    class CancellingReader(SourceReader):
        def read_session(self, session_id):
            seen.append(session_id)
            if session_id == "ses_a":
                holder["engine"].cancel()
            return super().read_session(session_id)

    engine = _engine(tree_store, storage, bus, CancellingReader(source.root))
    holder["engine"] = engine

    result = _run(engine)

    assert result.phase == "cancelled"
    assert seen == ["ses_a"]
    assert storage.is_empty()
    assert engine.progress.phase == "cancelled"


def test_cancel_without_run_is_noop(tree_store, storage, bus, reader) -> None:
    assert _engine(tree_store, storage, bus, reader).cancel() is False


def test_missing_message_root_ends_in_error(tmp_path, tree_store, storage, bus) -> None:
    subscription = bus.subscribe()
    engine = _engine(tree_store, storage, bus, SourceReader(tmp_path / "nowhere"))

    result = _run(engine)

    assert result.phase == "error"
    assert "Cannot list sessions" in result.error
    deadline = time.monotonic() + 2
    kinds = []
    while "error" not in kinds and time.monotonic() < deadline:
        event = subscription.get(timeout=0.05)
        if event is not None:
            kinds.append(event.type)
    assert "error" in kinds


def test_malformed_files_are_skipped(source, tree_store, storage, bus, reader) -> None:
    _write_scenario(source)
    (source.message_root / "ses_a" / "zz-broken.json").write_text("{", encoding="utf-8")

    result = _run(_engine(tree_store, storage, bus, reader))

    assert result.phase == "complete"
    assert storage.count_nodes() == 2


def test_progress_phases_are_published(source, tree_store, storage, bus, reader) -> None:
    _write_scenario(source)
    subscription = bus.subscribe()

    _run(_engine(tree_store, storage, bus, reader))

    phases = []
    deadline = time.monotonic() + 2
    while "complete" not in phases and time.monotonic() < deadline:
        event = subscription.get(timeout=0.05)
        if event is not None and event.type == "progress":
            phases.append(event.data["phase"])
    assert phases[0] == "init"
    assert phases.index("reading") < phases.index("building") < phases.index("writing")
    assert phases[-1] == "complete"


def test_start_requires_source_reader(tree_store, storage, bus) -> None:
    with pytest.raises(ConfigurationError):
        SyncEngine(tree_store, storage, bus).start()


def test_merge_children_keeps_existing_order() -> None:
    assert merge_children(["b", "a"], ["a", "b", "c"]) == ["b", "a", "c"]


def test_run_without_source_reader_raises_configuration_error(tree_store, storage, bus) -> None:
    engine = SyncEngine(tree_store, storage, bus)

    with pytest.raises(ConfigurationError):
        engine._execute(threading.Event())
