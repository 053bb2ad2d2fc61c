"""
Failure description — structured error information for the failure track.

An ErrorCode says which class of problem stopped an operation; the
FailureDescription carries the code, a human-readable message, the
originating exception (if any) and the moment the failure was recorded.

Enum members are singletons, so codes compare with `is` as well as `==`.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    Grouped by who can fix the problem:
    - Operator input / state: VALIDATION, CONFIGURATION, NOT_FOUND, ALREADY_EXISTS, BUSINESS_RULE
    - Data integrity: INTEGRITY (never expected under sequential use — fatal)
    - Environment: EXTERNAL_TOOL, STORAGE, SECRET, TIMEOUT, UNKNOWN
    """

    # --- Operator input / state ---
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Malformed input: bad hostname, CSR without a common name, unknown status."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Missing or invalid configuration value (e.g. no validity period)."""

    NOT_FOUND = "NOT_FOUND"
    """Store, host, CSR, certificate or ledger entry doesn't exist."""

    ALREADY_EXISTS = "ALREADY_EXISTS"
    """Target already exists and must not be overwritten."""

    BUSINESS_RULE_ERROR = "BUSINESS_RULE_ERROR"
    """Precondition or state-transition rule violated."""

    # --- Data integrity ---
    INTEGRITY_ERROR = "INTEGRITY_ERROR"
    """Persisted state contradicts itself (serial collision, corrupt ledger)."""

    # --- Environment ---
    EXTERNAL_TOOL_ERROR = "EXTERNAL_TOOL_ERROR"
    """Cryptographic toolkit or helper binary failed."""

    STORAGE_ERROR = "STORAGE_ERROR"
    """Filesystem read/write failure."""

    SECRET_ERROR = "SECRET_ERROR"
    """Passphrase could not be obtained or persisted."""

    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    """External invocation exceeded its time limit."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unexpected/unclassified failure."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional exception, and timestamp.

    >>> desc = FailureDescription(ErrorCode.NOT_FOUND, "No valid certificate for api.example.com")
    >>> desc.code
    <ErrorCode.NOT_FOUND: 'NOT_FOUND'>
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def create(
        code: ErrorCode,
        message: str,
        exception: BaseException | None = None,
    ) -> FailureDescription:
        return FailureDescription(code=code, message=message, exception=exception)

    def describe(self) -> str:
        """Operator-facing one-liner: the message plus the underlying exception, if any."""
        if self.exception is None:
            return self.message
        return f"{self.message}: {self.exception}"

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain (for debug logging)."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(type(self.exception), self.exception, self.exception.__traceback__)
        )
        return f"{self.message}\n{tb}"
