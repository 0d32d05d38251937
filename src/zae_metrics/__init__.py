"""
zae-metrics: time-bucketed usage counters backed by DynamoDB.

This library provides:
- Idempotent increments from at-least-once queues (SQS)
- Workspace and user rollups, hourly and daily
- Range queries that read daily rollups wherever a full day is covered
- Retry classification for partial batch failures
- Pluggable backends via MetricStoreProtocol

Example:
    from zae_metrics import MetricCounter, MetricQuery, MetricUpdate, Repository

    async with MetricCounter(Repository("feature-usage-dev")) as counter:
        await counter.increment(
            MetricUpdate(workspace_id="ws-1", metric_id="exports", count=3, date="2024-06-15T05"),
            message_id="msg-1",
        )
        total = await counter.query_count(
            MetricQuery(
                metric_id="exports",
                workspace_id="ws-1",
                from_date="2024-06-15T00",
                to_date="2024-06-15T23",
            )
        )
"""

from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING

from .classifier import ErrorClass, classify
from .config import Settings
from .counter import MetricCounter, SyncMetricCounter
from .exceptions import (
    ConditionFailedError,
    ConfigurationError,
    ValidationError,
    ZAEMetricsError,
)
from .memory import InMemoryRepository
from .models import (
    AddToCounter,
    CounterPage,
    CounterRecord,
    CreateIfAbsent,
    Granularity,
    IncrementResult,
    MetricQuery,
    MetricUpdate,
    QuerySegment,
    Scope,
    ScopeType,
)
from .repository_protocol import MetricStoreProtocol
from .segments import plan_segments

if TYPE_CHECKING:
    from .repository import Repository as Repository

try:
    __version__ = version("zae-metrics")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Main classes
    "MetricCounter",
    "SyncMetricCounter",
    "Repository",
    "InMemoryRepository",
    "MetricStoreProtocol",
    "Settings",
    # Models
    "Granularity",
    "ScopeType",
    "Scope",
    "MetricUpdate",
    "MetricQuery",
    "QuerySegment",
    "IncrementResult",
    "AddToCounter",
    "CreateIfAbsent",
    "CounterRecord",
    "CounterPage",
    # Functions
    "plan_segments",
    "classify",
    "ErrorClass",
    # Exceptions
    "ZAEMetricsError",
    "ValidationError",
    "ConditionFailedError",
    "ConfigurationError",
]


def __getattr__(name: str) -> type:
    """Lazy import of the DynamoDB repository (requires aiobotocore).

    See Also:
        PEP 562 -- Module __getattr__ and __dir__
    """
    if name == "Repository":
        from .repository import Repository

        return Repository
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
