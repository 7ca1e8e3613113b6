"""Read the OpenCode on-disk message and part layout."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

from ..models.source import SourceMessage, SourcePart
from .errors import SyncError

logger = logging.getLogger(__name__)


def _is_safe_segment(name: str) -> bool:
    return bool(name) and "/" not in name and "\\" not in name and name not in (".", "..")


class SourceReader:
    """Stateless reader over ``<data_dir>/storage/{message,part}``."""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        self.message_root = self.data_dir / "storage" / "message"
        self.part_root = self.data_dir / "storage" / "part"

    def list_sessions(self) -> List[str]:
        """Return session directory names in sorted order.

        Raises SyncError when the message root cannot be listed.
        """
        try:
            return sorted(entry.name for entry in self.message_root.iterdir() if entry.is_dir())
        except OSError as exc:
            raise SyncError(f"Cannot list sessions in {self.message_root}", exc) from exc

    def read_session(self, session_id: str) -> List[SourceMessage]:
        """Parse every message file of a session; unreadable files are skipped."""
        session_dir = self.message_root / session_id
        try:
            files = sorted(path for path in session_dir.iterdir() if path.suffix == ".json")
        except OSError as exc:
            logger.warning("Skipping session %s: %s", session_id, exc)
            return []

        messages: List[SourceMessage] = []
        for path in files:
            message = self.read_message_file(path)
            if message is None:
                continue
            if not message.session_id:
                message.session_id = session_id
            messages.append(message)
        return messages

    def read_message_file(self, path: Path) -> Optional[SourceMessage]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return SourceMessage.model_validate(data)
        except (OSError, ValueError) as exc:
            logger.warning("Skipping unreadable message file %s: %s", path, exc)
            return None

    def read_content(self, message_id: str) -> Optional[str]:
        """Join the text parts of a message with newlines.

        Returns None when the message has no part directory.
        """
        if not _is_safe_segment(message_id):
            return None
        part_dir = self.part_root / message_id
        if not part_dir.is_dir():
            return None
        try:
            files = sorted(path for path in part_dir.iterdir() if path.suffix == ".json")
        except OSError as exc:
            logger.warning("Cannot list parts for %s: %s", message_id, exc)
            return None

        texts: List[str] = []
        for path in files:
            try:
                part = SourcePart.model_validate(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable part file %s: %s", path, exc)
                continue
            if part.type == "text" and part.text:
                texts.append(part.text)
        return "\n".join(texts)


__all__ = ["SourceReader"]
