"""
Execution contexts — separate WHAT an operation does from HOW it is run.

An operation is a zero-argument callable returning Result[T]. A context
decides what happens around it: timing and logging, holding a lock,
nothing at all. Contexts nest, so a command can be "logged, then locked".

    ctx = ComposableExecutionContext(
        LoggingExecutionContext(operation="revoke"),
        store.lock,
    )
    result = ctx.execute(lambda: manager.revoke(store, target))
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol, TypeVar, runtime_checkable

from railway.failure import ErrorCode, FailureDescription
from railway.result import Failure, Result

T = TypeVar("T")
logger = logging.getLogger("railway.execution")


@runtime_checkable
class ExecutionContext(Protocol):
    """Anything with execute(computation) is a context — no inheritance needed."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]: ...


class NoOpExecutionContext:
    """Runs the computation as-is. Use in unit tests."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        return computation()


class LoggingExecutionContext:
    """
    Logs entry, duration and outcome of the wrapped computation.

    An exception escaping the computation is converted into an UNKNOWN_ERROR
    failure so callers always receive a Result.
    """

    def __init__(
        self,
        inner: ExecutionContext | None = None,
        operation: str = "unknown",
        log_level: int = logging.INFO,
    ) -> None:
        self._inner = inner or NoOpExecutionContext()
        self._operation = operation
        self._log_level = log_level

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        logger.log(self._log_level, "[%s] Starting execution", self._operation)
        start = time.monotonic()

        try:
            result = self._inner.execute(computation)
        except Exception as e:
            elapsed = time.monotonic() - start
            logger.error("[%s] Execution failed after %.3fs: %s", self._operation, elapsed, e)
            return Failure(FailureDescription(ErrorCode.UNKNOWN_ERROR, f"Execution failed: {e}", e))

        elapsed = time.monotonic() - start
        state = "SUCCESS" if result.is_success() else "FAILURE"
        logger.log(self._log_level, "[%s] Completed in %.3fs — %s", self._operation, elapsed, state)
        return result


class ComposableExecutionContext:
    """
    Compose several contexts into one; the first listed is the outermost.

        ComposableExecutionContext(logging_ctx, lock_ctx)
        # logging wraps lock wraps computation
    """

    def __init__(self, *contexts: ExecutionContext) -> None:
        if not contexts:
            raise ValueError("At least one execution context is required")
        self._contexts = list(contexts)

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        wrapped = computation
        for ctx in reversed(self._contexts):
            prev = wrapped
            wrapped = lambda _ctx=ctx, _prev=prev: _ctx.execute(_prev)
        return wrapped()
