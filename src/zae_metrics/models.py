"""Core models for zae-metrics."""

import math
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .exceptions import ValidationError

# Identifiers end up inside partition keys, so '#' (the key delimiter) and
# anything outside this alphabet is rejected.
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_IDENTIFIER_LENGTH = 128

DATE_HOUR_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])T([01]\d|2[0-3])$")
DATE_HOUR_FORMAT = "%Y-%m-%dT%H"

MAX_COUNT = 1_000_000
DEFAULT_MAX_DATE_RANGE_DAYS = 1825


class Granularity(str, Enum):
    """Time resolution of a stored rollup."""

    HOURLY = "hourly"
    DAILY = "daily"


class ScopeType(str, Enum):
    """Owner type of a counter."""

    WORKSPACE = "workspace"
    USER = "user"


def parse_date_hour(value: str) -> datetime:
    """Parse a ``YYYY-MM-DDThh`` string into an aware UTC datetime."""
    if not DATE_HOUR_PATTERN.match(value):
        raise ValueError(f"Invalid date-hour: {value}")
    return datetime.strptime(value, DATE_HOUR_FORMAT).replace(tzinfo=UTC)


def format_date_hour(value: datetime) -> str:
    """Format a datetime as ``YYYY-MM-DDThh``."""
    return value.strftime(DATE_HOUR_FORMAT)


def validate_identifier(value: Any, name: str) -> str:
    """
    Validate an identifier used as part of a storage key.

    Args:
        value: The value to validate
        name: Field name used in error messages

    Returns:
        The validated identifier

    Raises:
        ValidationError: If the identifier is missing, too long or contains
            characters outside ``[A-Za-z0-9_-]``
    """
    if not isinstance(value, str) or not value:
        raise ValidationError(name, value, f"{name} is required and must be a non-empty string")
    if len(value) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            name, value, f"{name} must be at most {MAX_IDENTIFIER_LENGTH} characters"
        )
    if not IDENTIFIER_PATTERN.match(value):
        raise ValidationError(
            name,
            value,
            f"{name} must contain only alphanumeric characters, hyphens, and underscores",
        )
    return value


def validate_date_hour(value: Any, name: str) -> str:
    """Validate a ``YYYY-MM-DDThh`` value, including calendar validity."""
    if not isinstance(value, str) or not DATE_HOUR_PATTERN.match(value):
        raise ValidationError(
            name, value, f"{name} is required and must match YYYY-MM-DDThh format"
        )
    try:
        parse_date_hour(value)
    except ValueError:
        raise ValidationError(name, value, f"{name} contains an invalid calendar date") from None
    return value


def _validate_optional_identifier(value: Any, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ValidationError(name, value, f"{name} must be a non-empty string")
    return validate_identifier(value, name)


def _validate_count(value: Any) -> int:
    message = "count must be a positive integer"
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("count", value, message)
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise ValidationError("count", value, message)
        value = int(value)
    if value <= 0:
        raise ValidationError("count", value, message)
    if value > MAX_COUNT:
        raise ValidationError("count", value, f"count must be at most {MAX_COUNT}")
    return value


def _ensure_object(data: Any, label: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError(label, data, f"{label} must be a non-null object")
    return data


@dataclass(frozen=True)
class Scope:
    """
    Owner of a counter: a workspace, or a specific user within one.

    Workspace and user counters live in disjoint key spaces, so a user
    query never includes the workspace total and vice versa.
    """

    type: ScopeType
    id: str

    @classmethod
    def workspace(cls, workspace_id: str) -> "Scope":
        return cls(ScopeType.WORKSPACE, workspace_id)

    @classmethod
    def user(cls, user_id: str) -> "Scope":
        return cls(ScopeType.USER, user_id)


@dataclass(frozen=True)
class MetricUpdate:
    """
    An "increment metric by count at hour" event.

    Attributes:
        workspace_id: Workspace the usage belongs to
        metric_id: Metric being counted
        count: Positive amount to add
        date: Hour bucket as ``YYYY-MM-DDThh`` (UTC)
        user_id: Optional user inside the workspace
        schema_version: Payload schema version
    """

    workspace_id: str
    metric_id: str
    count: int
    date: str
    user_id: str | None = None
    schema_version: int = 1

    def scopes(self) -> list[Scope]:
        """Scopes this update is counted under (workspace first)."""
        scopes = [Scope.workspace(self.workspace_id)]
        if self.user_id:
            scopes.append(Scope.user(self.user_id))
        return scopes

    @classmethod
    def from_dict(cls, data: Any) -> "MetricUpdate":
        """
        Validate and build from a decoded message body.

        Raises:
            ValidationError: On the first invalid field
        """
        body = _ensure_object(data, "message body")

        schema_version = body.get("schemaVersion", 1)
        if isinstance(schema_version, bool) or not isinstance(schema_version, int):
            raise ValidationError(
                "schemaVersion", schema_version, "schemaVersion must be a positive integer"
            )
        if schema_version <= 0:
            raise ValidationError(
                "schemaVersion", schema_version, "schemaVersion must be a positive integer"
            )

        return cls(
            workspace_id=validate_identifier(body.get("workspaceId"), "workspaceId"),
            metric_id=validate_identifier(body.get("metricId"), "metricId"),
            count=_validate_count(body.get("count")),
            date=validate_date_hour(body.get("date"), "date"),
            user_id=_validate_optional_identifier(body.get("userId"), "userId"),
            schema_version=schema_version,
        )


@dataclass(frozen=True)
class MetricQuery:
    """
    A "total count of metric between two hours" request.

    Both bounds are inclusive hours in ``YYYY-MM-DDThh`` format.
    """

    metric_id: str
    workspace_id: str
    from_date: str
    to_date: str
    user_id: str | None = None

    @property
    def scope(self) -> Scope:
        """The single scope this query reads."""
        if self.user_id:
            return Scope.user(self.user_id)
        return Scope.workspace(self.workspace_id)

    @classmethod
    def from_dict(
        cls,
        data: Any,
        max_range_days: int = DEFAULT_MAX_DATE_RANGE_DAYS,
    ) -> "MetricQuery":
        """
        Validate and build from a query request payload.

        Raises:
            ValidationError: On the first invalid field, when ``toDate`` is
                before ``fromDate`` or when the span exceeds ``max_range_days``
        """
        body = _ensure_object(data, "request")

        metric_id = validate_identifier(body.get("metricId"), "metricId")
        workspace_id = validate_identifier(body.get("workspaceId"), "workspaceId")
        user_id = _validate_optional_identifier(body.get("userId"), "userId")
        from_date = validate_date_hour(body.get("fromDate"), "fromDate")
        to_date = validate_date_hour(body.get("toDate"), "toDate")

        if to_date < from_date:
            raise ValidationError("toDate", to_date, "toDate must not be before fromDate")

        span_days = (parse_date_hour(to_date).date() - parse_date_hour(from_date).date()).days
        if span_days > max_range_days:
            raise ValidationError(
                "toDate", to_date, f"date range exceeds maximum of {max_range_days} days"
            )

        return cls(
            metric_id=metric_id,
            workspace_id=workspace_id,
            from_date=from_date,
            to_date=to_date,
            user_id=user_id,
        )

    def to_dict(self) -> dict[str, str]:
        """Serialize back to the request payload shape."""
        result = {
            "metricId": self.metric_id,
            "workspaceId": self.workspace_id,
            "fromDate": self.from_date,
            "toDate": self.to_date,
        }
        if self.user_id:
            result["userId"] = self.user_id
        return result


@dataclass(frozen=True)
class QuerySegment:
    """A sub-range of a query read at a single granularity."""

    granularity: Granularity
    from_date: str
    to_date: str


@dataclass(frozen=True)
class IncrementResult:
    """Outcome of an increment: ``duplicate`` when the message was already counted."""

    duplicate: bool


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddToCounter:
    """
    Additive upsert: add ``delta`` to the record's count (creating it at
    ``delta`` when absent) and set its expiry to ``ttl``.
    """

    pk: str
    sk: str
    delta: int
    ttl: int


@dataclass(frozen=True)
class CreateIfAbsent:
    """Conditional create: write the record, failing if the key already exists."""

    pk: str
    sk: str
    ttl: int


TransactOp = AddToCounter | CreateIfAbsent


@dataclass(frozen=True)
class CounterRecord:
    """A counter record returned by a range read."""

    pk: str
    sk: str
    count: int
    ttl: int | None = None


@dataclass
class CounterPage:
    """One page of a range read. ``next_key`` is None on the last page."""

    items: list[CounterRecord] = field(default_factory=list)
    next_key: Any = None
