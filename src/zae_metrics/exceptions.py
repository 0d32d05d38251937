"""Exceptions for zae-metrics."""

from typing import Any

# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------


class ZAEMetricsError(Exception):
    """
    Base exception for all zae-metrics errors.

    All exceptions raised by this library inherit from this class,
    allowing callers to catch all library-specific errors with a single
    except clause.

    Errors raised by the storage backend itself (botocore ``ClientError``,
    connection failures, timeouts) are NOT wrapped. They propagate unchanged
    and are classified at the handler boundary (see ``classifier.classify``).
    """

    pass


# ---------------------------------------------------------------------------
# Input Exceptions
# ---------------------------------------------------------------------------


class ValidationError(ZAEMetricsError):
    """
    Raised when an inbound payload fails validation.

    Validation failures are permanent: the same payload will never succeed,
    so the ingestion handler drops the record instead of retrying it.

    Attributes:
        field: Name of the offending field
        value: The rejected value
        reason: Human-readable explanation
    """

    def __init__(self, field: str, value: Any, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(reason)


# ---------------------------------------------------------------------------
# Store Exceptions
# ---------------------------------------------------------------------------


class ConditionFailedError(ZAEMetricsError):
    """
    Raised by a store when a ``CreateIfAbsent`` operation's condition fails.

    The whole transaction was rejected; no operation in it was applied.

    Attributes:
        op_index: Position of the failed operation in the transaction
        cause: The backend exception, if any
    """

    def __init__(self, op_index: int, cause: Exception | None = None) -> None:
        self.op_index = op_index
        self.cause = cause
        super().__init__(f"Condition failed for transaction operation {op_index}")


# ---------------------------------------------------------------------------
# Configuration Exceptions
# ---------------------------------------------------------------------------


class ConfigurationError(ZAEMetricsError):
    """Raised when required environment configuration is missing or invalid."""

    def __init__(self, variable: str, reason: str) -> None:
        self.variable = variable
        self.reason = reason
        super().__init__(f"Invalid configuration for {variable}: {reason}")
