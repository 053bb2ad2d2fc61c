"""
Unit tests for StoreLock — the store's single-writer execution context.
"""

from __future__ import annotations

import fcntl
from pathlib import Path

import pytest
from railway import ErrorCode, ExecutionContext, Result, ResultAssertions

from cactl.locking import StoreLock


def lock_is_free(path: Path) -> bool:
    """Try the lock from an independent descriptor without blocking."""
    with open(path, "a+") as other:
        try:
            fcntl.flock(other.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        fcntl.flock(other.fileno(), fcntl.LOCK_UN)
        return True


class TestStoreLock:
    def test_is_an_execution_context(self, tmp_path: Path) -> None:
        assert isinstance(StoreLock(tmp_path / ".lock"), ExecutionContext)

    def test_holds_lock_during_computation_only(self, tmp_path: Path) -> None:
        """
        GIVEN a StoreLock
        WHEN a computation runs inside it
        THEN a second descriptor cannot take the lock meanwhile, but can afterwards.
        """
        path = tmp_path / ".lock"
        lock = StoreLock(path)

        def while_locked() -> Result[bool]:
            if lock_is_free(path):
                return Result.failure(ErrorCode.BUSINESS_RULE_ERROR, "lock was not held")
            return Result.success(True)

        assert ResultAssertions.assert_success(lock.execute(while_locked)) is True
        assert lock_is_free(path)

    def test_reentrant_on_same_handle(self, tmp_path: Path) -> None:
        path = tmp_path / ".lock"
        lock = StoreLock(path)

        result = lock.execute(lambda: lock.execute(lambda: Result.success("inner")))

        assert ResultAssertions.assert_success(result) == "inner"
        assert lock_is_free(path)

    def test_inner_release_keeps_outer_lock(self, tmp_path: Path) -> None:
        path = tmp_path / ".lock"
        lock = StoreLock(path)

        def outer() -> Result[bool]:
            lock.execute(lambda: Result.success("inner"))
            return Result.success(not lock_is_free(path))

        assert ResultAssertions.assert_success(lock.execute(outer)) is True

    def test_released_when_computation_raises(self, tmp_path: Path) -> None:
        path = tmp_path / ".lock"
        lock = StoreLock(path)

        def boom() -> Result[str]:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            lock.execute(boom)
        assert lock_is_free(path)
