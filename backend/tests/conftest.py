from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import pytest

from backend.explorer.services.config import AppConfig
from backend.explorer.services.database import DatabaseService
from backend.explorer.services.notifications import NotificationBus
from backend.explorer.services.source_reader import SourceReader
from backend.explorer.services.storage import StorageService
from backend.explorer.services.tree_store import TreeStore


class SourceTree:
    """Builds an OpenCode storage layout under a temporary directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.message_root = root / "storage" / "message"
        self.part_root = root / "storage" / "part"
        self.message_root.mkdir(parents=True, exist_ok=True)
        self.part_root.mkdir(parents=True, exist_ok=True)

    def write_message(
        self,
        session_id: str,
        message_id: str,
        role: str,
        *,
        created: int = 1_700_000_000_000,
        summary: Any = None,
        parent_id: Optional[str] = None,
        agent: str = "build",
    ) -> Path:
        data: dict[str, Any] = {
            "id": message_id,
            "sessionID": session_id,
            "role": role,
            "time": {"created": created},
            "agent": agent,
        }
        if summary is not None:
            data["summary"] = summary
        if parent_id is not None:
            data["parentId"] = parent_id
        session_dir = self.message_root / session_id
        session_dir.mkdir(parents=True, exist_ok=True)
        path = session_dir / f"{message_id}.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def write_part(self, message_id: str, part_id: str, text: str, part_type: str = "text") -> Path:
        part_dir = self.part_root / message_id
        part_dir.mkdir(parents=True, exist_ok=True)
        path = part_dir / f"{part_id}.json"
        path.write_text(
            json.dumps({"id": part_id, "messageID": message_id, "type": part_type, "text": text}),
            encoding="utf-8",
        )
        return path


@pytest.fixture()
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        source_data_dir=tmp_path / "opencode",
        database_path=tmp_path / "explorer.db",
        auto_sync=False,
    )


@pytest.fixture()
def source(config: AppConfig) -> SourceTree:
    return SourceTree(config.source_data_dir)


@pytest.fixture()
def db_service(config: AppConfig):
    service = DatabaseService(config.database_path)
    service.initialize()
    yield service
    service.close()


@pytest.fixture()
def storage(db_service: DatabaseService) -> StorageService:
    return StorageService(db_service=db_service)


@pytest.fixture()
def bus():
    event_bus = NotificationBus(queue_size=100, outbox_size=1000)
    event_bus.start()
    yield event_bus
    event_bus.stop()


@pytest.fixture()
def reader(config: AppConfig, source: SourceTree) -> SourceReader:
    return SourceReader(config.source_data_dir)


@pytest.fixture()
def tree_store(
    storage: StorageService, bus: NotificationBus, config: AppConfig, reader: SourceReader
) -> TreeStore:
    return TreeStore(storage, bus, config=config, source_reader=reader)
