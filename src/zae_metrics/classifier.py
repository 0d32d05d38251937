"""Failure classification for retry decisions.

Store errors are never wrapped by the engines; the boundary handlers pass
whatever was raised to :func:`classify` and decide per record whether to
retry (TRANSIENT, UNCLASSIFIED) or drop (PERMANENT).
"""

from enum import Enum
from typing import Any

from botocore.exceptions import ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError


class ErrorClass(str, Enum):
    """Retry classification of a failure."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNCLASSIFIED = "unclassified"

    @property
    def retryable(self) -> bool:
        """Unclassified failures are retried: a redundant retry is absorbed by
        the dedup marker, a dropped message is lost for good."""
        return self is not ErrorClass.PERMANENT


TRANSIENT_ERROR_NAMES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailableException",
        "TransactionConflictException",
        "TimeoutError",
        "NetworkingError",
    }
)

PERMANENT_ERROR_NAMES = frozenset(
    {
        "AccessDeniedException",
        "ResourceNotFoundException",
        "ValidationException",
        "SerializationException",
    }
)

# TransactionCanceledException reason codes that mean "try again later"
TRANSIENT_CANCELLATION_CODES = frozenset(
    {
        "ThrottlingError",
        "ProvisionedThroughputExceeded",
        "RequestLimitExceeded",
        "TransactionConflict",
    }
)


def error_name(error: BaseException) -> str:
    """AWS error code for ClientError, otherwise the exception class name."""
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code")
        if code:
            return str(code)
    return type(error).__name__


def http_status_code(error: BaseException) -> int | None:
    """HTTP status carried by the error, if any."""
    if isinstance(error, ClientError):
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return int(status) if status is not None else None
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def _cancellation_codes(error: ClientError) -> list[str]:
    reasons: list[dict[str, Any]] = error.response.get("CancellationReasons") or []
    return [str(reason.get("Code")) for reason in reasons if reason.get("Code")]


def is_transient(error: BaseException) -> bool:
    """True for overload, throttling, timeout, network and 5xx failures."""
    if isinstance(error, (BotoConnectionError, HTTPClientError)):
        return True

    name = error_name(error)
    if name in TRANSIENT_ERROR_NAMES:
        return True

    if name == "TransactionCanceledException" and isinstance(error, ClientError):
        if any(code in TRANSIENT_CANCELLATION_CODES for code in _cancellation_codes(error)):
            return True

    status = http_status_code(error)
    return status is not None and status >= 500


def is_permanent(error: BaseException) -> bool:
    """True for authorization, not-found and malformed-request failures."""
    return error_name(error) in PERMANENT_ERROR_NAMES


def classify(error: BaseException) -> ErrorClass:
    """
    Classify a failure for retry purposes.

    Transient rules are checked first, so an error matching both a permanent
    name and a 5xx status is transient.

    Args:
        error: Any exception

    Returns:
        Exactly one ErrorClass
    """
    if is_transient(error):
        return ErrorClass.TRANSIENT
    if is_permanent(error):
        return ErrorClass.PERMANENT
    return ErrorClass.UNCLASSIFIED
