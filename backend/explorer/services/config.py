"""Application configuration helpers."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
import re
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_DB_PATH = PROJECT_ROOT / "data" / "oc-message-explorer.db"
DEFAULT_SOURCE_DIR = Path("~/.local/share/opencode")

HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{3}(?:[0-9A-Fa-f]{3})?$")
FALSY_VALUES = {"0", "false", "no", "off"}


class AppConfig(BaseModel):
    """Runtime configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    source_data_dir: Optional[Path] = Field(
        default=None,
        description="Root of the OpenCode data directory (contains storage/message and storage/part)",
    )
    database_path: Path = Field(
        default=DEFAULT_DB_PATH, description="SQLite file holding folders, nodes and tags"
    )
    default_folder_id: str = Field(default="openchat", min_length=1)
    default_folder_name: str = Field(default="OpenChat History", min_length=1)
    default_folder_color: str = Field(default="#e94560")
    event_queue_size: int = Field(
        default=100, ge=1, description="Capacity of the notification bus queue"
    )
    subscriber_outbox_size: int = Field(
        default=256, ge=1, description="Per-subscriber outbox capacity before disconnect"
    )
    search_limit: int = Field(default=50, ge=1, le=1000)
    search_mode: Literal["indexed", "fuzzy"] = Field(default="indexed")
    auto_sync: bool = Field(
        default=True, description="Start a background sync when the application starts"
    )
    port: int = Field(default=8000, ge=1, le=65535)

    @field_validator("source_data_dir", mode="before")
    @classmethod
    def _normalize_source_dir(cls, value: str | Path | None) -> Optional[Path]:
        if value is None or value == "":
            return None
        path = value if isinstance(value, Path) else Path(value)
        return path.expanduser().resolve()

    @field_validator("database_path", mode="before")
    @classmethod
    def _normalize_db_path(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            raise ValueError("DATABASE_PATH cannot be empty")
        path = value if isinstance(value, Path) else Path(value)
        return path.expanduser()

    @field_validator("default_folder_color")
    @classmethod
    def _validate_color(cls, value: str) -> str:
        if not HEX_COLOR_PATTERN.match(value):
            raise ValueError("DEFAULT_FOLDER_COLOR must be a hex color such as #e94560")
        return value

    @field_validator("search_mode", mode="before")
    @classmethod
    def _lower_search_mode(cls, value: str) -> str:
        return value.strip().lower() if isinstance(value, str) else value


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


def _read_flag(key: str, default: str = "true") -> bool:
    return (_read_env(key, default) or "").strip().lower() not in FALSY_VALUES


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load and cache application configuration."""
    source_dir = _read_env("OPENCODE_DATA_DIR", str(DEFAULT_SOURCE_DIR))
    return AppConfig(
        source_data_dir=source_dir,
        database_path=_read_env("DATABASE_PATH", str(DEFAULT_DB_PATH)),
        default_folder_id=_read_env("DEFAULT_FOLDER_ID", "openchat"),
        default_folder_name=_read_env("DEFAULT_FOLDER_NAME", "OpenChat History"),
        default_folder_color=_read_env("DEFAULT_FOLDER_COLOR", "#e94560"),
        event_queue_size=_read_env("EVENT_QUEUE_SIZE", "100"),
        subscriber_outbox_size=_read_env("SUBSCRIBER_OUTBOX_SIZE", "256"),
        search_limit=_read_env("SEARCH_LIMIT", "50"),
        search_mode=_read_env("SEARCH_MODE", "indexed"),
        auto_sync=_read_flag("AUTO_SYNC"),
        port=_read_env("PORT", "8000"),
    )


def reload_config() -> AppConfig:
    """Clear cached config (useful for tests) and reload."""
    get_config.cache_clear()
    return get_config()


__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "PROJECT_ROOT",
    "DEFAULT_DB_PATH",
    "DEFAULT_SOURCE_DIR",
]
