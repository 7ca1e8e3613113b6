"""Readers/writer lock guarding the in-memory folder tree."""

from __future__ import annotations

from contextlib import contextmanager
import threading
from typing import Dict, Iterator, Optional


class ReadWriteLock:
    """Shared reads, exclusive writes, waiting writers block new readers.

    The writing thread may re-enter as reader or writer. Upgrading a held
    read lock to a write lock is refused.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._reader_owners: Dict[int, int] = {}
        self._writer_owner: Optional[int] = None
        self._writer_depth = 0
        self._writers_waiting = 0

    @contextmanager
    def read_lock(self) -> Iterator[None]:
        tid = threading.get_ident()
        with self._cond:
            if self._writer_owner != tid and self._reader_owners.get(tid, 0) == 0:
                while self._writer_owner is not None or self._writers_waiting:
                    self._cond.wait()
            self._readers += 1
            self._reader_owners[tid] = self._reader_owners.get(tid, 0) + 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                remaining = self._reader_owners[tid] - 1
                if remaining:
                    self._reader_owners[tid] = remaining
                else:
                    del self._reader_owners[tid]
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        tid = threading.get_ident()
        with self._cond:
            if self._writer_owner == tid:
                self._writer_depth += 1
            else:
                if self._reader_owners.get(tid, 0):
                    raise RuntimeError("Cannot upgrade a read lock to a write lock")
                self._writers_waiting += 1
                try:
                    while self._writer_owner is not None or self._readers:
                        self._cond.wait()
                finally:
                    self._writers_waiting -= 1
                self._writer_owner = tid
                self._writer_depth = 1
        try:
            yield
        finally:
            with self._cond:
                self._writer_depth -= 1
                if self._writer_depth == 0:
                    self._writer_owner = None
                    self._cond.notify_all()


__all__ = ["ReadWriteLock"]
