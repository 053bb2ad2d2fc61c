"""
Single-writer lock for an AuthorityStore.

Serial allocation and ledger append are two separate file writes, so every
mutating operation on a store runs inside this execution context. The lock
is an exclusive fcntl.flock on `<store>/.lock`; it blocks until available.

Re-entrant per instance: an operation holding the lock may call another
locked operation on the same store handle.
"""

from __future__ import annotations

import fcntl
from pathlib import Path
from typing import Callable, TypeVar

import structlog
from railway.result import Result

T = TypeVar("T")
log = structlog.get_logger()


class StoreLock:
    """ExecutionContext holding an exclusive lock on one store directory."""

    def __init__(self, lock_path: Path) -> None:
        self._lock_path = lock_path
        self._depth = 0
        self._handle = None

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        self._acquire()
        try:
            return computation()
        finally:
            self._release()

    def _acquire(self) -> None:
        if self._depth == 0:
            self._lock_path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(self._lock_path, "a+")  # noqa: SIM115
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            self._handle = handle
            log.debug("store.lock_acquired", lock=str(self._lock_path))
        self._depth += 1

    def _release(self) -> None:
        self._depth -= 1
        if self._depth == 0 and self._handle is not None:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
            self._handle.close()
            self._handle = None
            log.debug("store.lock_released", lock=str(self._lock_path))
