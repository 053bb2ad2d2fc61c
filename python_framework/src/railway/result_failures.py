"""
Convenience factories for the failures raised most often.

    from railway import ResultFailures

    # Instead of:
    Result.failure(ErrorCode.NOT_FOUND, "host not found with identifier: api.example.com")

    # Write:
    ResultFailures.not_found("host", "api.example.com")
"""

from __future__ import annotations

from pathlib import Path

from railway.failure import ErrorCode
from railway.result import Result


class ResultFailures:
    """Factory methods for common failure types."""

    @staticmethod
    def validation_error(message: str) -> Result:
        """Malformed operator input."""
        return Result.failure(ErrorCode.VALIDATION_ERROR, message)

    @staticmethod
    def configuration_error(message: str) -> Result:
        """Missing or invalid configuration value."""
        return Result.failure(ErrorCode.CONFIGURATION_ERROR, message)

    @staticmethod
    def not_found(resource_type: str, identifier: str) -> Result:
        return Result.failure(
            ErrorCode.NOT_FOUND,
            f"{resource_type} not found with identifier: {identifier}",
        )

    @staticmethod
    def already_exists(resource_type: str, location: str | Path) -> Result:
        return Result.failure(
            ErrorCode.ALREADY_EXISTS,
            f"{resource_type} already exists at {location}",
        )

    @staticmethod
    def business_rule_error(message: str) -> Result:
        """Precondition or state-transition rule violated."""
        return Result.failure(ErrorCode.BUSINESS_RULE_ERROR, message)

    @staticmethod
    def integrity_error(message: str) -> Result:
        """Persisted state contradicts itself."""
        return Result.failure(ErrorCode.INTEGRITY_ERROR, message)

    @staticmethod
    def external_tool_error(message: str, exception: BaseException | None = None) -> Result:
        return Result.failure(ErrorCode.EXTERNAL_TOOL_ERROR, message, exception)

    @staticmethod
    def storage_error(message: str, exception: BaseException | None = None) -> Result:
        return Result.failure(ErrorCode.STORAGE_ERROR, message, exception)

    @staticmethod
    def secret_error(message: str, exception: BaseException | None = None) -> Result:
        return Result.failure(ErrorCode.SECRET_ERROR, message, exception)

    @staticmethod
    def timeout_error(message: str) -> Result:
        return Result.failure(ErrorCode.TIMEOUT_ERROR, message)

    @staticmethod
    def from_exception(message: str, exception: BaseException) -> Result:
        """
        Map a Python exception to the closest ErrorCode.

          - FileExistsError → ALREADY_EXISTS
          - FileNotFoundError, LookupError → NOT_FOUND
          - TimeoutError → TIMEOUT_ERROR
          - OSError → STORAGE_ERROR
          - ValueError, TypeError → VALIDATION_ERROR
          - Everything else → UNKNOWN_ERROR
        """
        return Result.failure(_map_exception_to_code(exception), message, exception)


def _map_exception_to_code(exception: BaseException) -> ErrorCode:
    match exception:
        case FileExistsError():
            return ErrorCode.ALREADY_EXISTS
        case FileNotFoundError() | LookupError():
            return ErrorCode.NOT_FOUND
        case TimeoutError():
            return ErrorCode.TIMEOUT_ERROR
        case OSError():
            return ErrorCode.STORAGE_ERROR
        case ValueError() | TypeError():
            return ErrorCode.VALIDATION_ERROR
        case _:
            return ErrorCode.UNKNOWN_ERROR
