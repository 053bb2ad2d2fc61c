"""
Railway-Oriented Programming (ROP) framework.

Explicit, composable error handling — operations return Result instead of
raising, and failures travel down their own track.

    from railway import Result, ErrorCode

    def require_days(days: int | None) -> Result[int]:
        if days is None:
            return Result.failure(ErrorCode.CONFIGURATION_ERROR, "default_days is not set")
        return Result.success(days)

    result = Result.success(825).flat_map(require_days).map(lambda d: f"valid for {d} days")
"""

from railway.result import Result, Success, Failure
from railway.failure import ErrorCode, FailureDescription
from railway.execution import (
    ExecutionContext,
    NoOpExecutionContext,
    LoggingExecutionContext,
    ComposableExecutionContext,
)
from railway.result_failures import ResultFailures
from railway.assertions import ResultAssertions

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ComposableExecutionContext",
    "ResultFailures",
    "ResultAssertions",
]

__version__ = "1.1.0"
