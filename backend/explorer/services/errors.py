"""Typed errors raised by the explorer services."""

from __future__ import annotations

from typing import Optional


class ExplorerError(Exception):
    """Base error carrying a human message and an optional underlying cause."""

    error_type = "internal_error"
    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.error_type}: {self.message} (caused by: {self.cause})"
        return f"{self.error_type}: {self.message}"


class NotFoundError(ExplorerError):
    """Raised when a folder or node id does not resolve."""

    error_type = "not_found"
    status_code = 404


class ValidationError(ExplorerError):
    error_type = "validation_error"
    status_code = 400


class DatabaseError(ExplorerError):
    """Raised when the SQLite store cannot be opened, read or written."""

    error_type = "database_error"
    status_code = 500


class SyncError(ExplorerError):
    error_type = "sync_error"
    status_code = 500


class InternalError(ExplorerError):
    error_type = "internal_error"
    status_code = 500


class ConfigurationError(ExplorerError):
    """Raised when a required setting (such as the source data root) is missing."""

    error_type = "configuration_error"
    status_code = 503


__all__ = [
    "ExplorerError",
    "NotFoundError",
    "ValidationError",
    "DatabaseError",
    "SyncError",
    "InternalError",
    "ConfigurationError",
]
