"""Lambda handler for SQS metric update batches."""

import time
from typing import Any

from ..config import Settings
from ..counter import SyncMetricCounter
from ..logger import StructuredLogger
from .processor import process_records

logger = StructuredLogger(__name__)

_settings: Settings | None = None
_counter: SyncMetricCounter | None = None


def get_settings() -> Settings:
    """Process-wide settings, loaded from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.set_level(_settings.log_level)
    return _settings


def get_counter() -> SyncMetricCounter:
    """Process-wide counter, built on first use."""
    global _counter
    if _counter is None:
        _counter = SyncMetricCounter.from_settings(get_settings())
    return _counter


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """
    Lambda handler for SQS events carrying metric updates.

    Each record body is a JSON object with ``workspaceId``, ``metricId``,
    ``count``, ``date`` (``YYYY-MM-DDThh``) and an optional ``userId``.

    Environment variables:
        ENV / TABLE_NAME: DynamoDB table (``feature-usage-{ENV}``)
        TTL_DAYS: Counter retention in days (default: 90)
        LOG_LEVEL: Log threshold (default: INFO)

    Args:
        event: SQS event
        context: Lambda context

    Returns:
        SQS partial batch response listing the message ids to redeliver
    """
    start_time = time.perf_counter()
    request_id = getattr(context, "aws_request_id", None) or "local"
    records = event.get("Records", [])
    counter = get_counter() if records else None
    log = logger.bind(request_id=request_id)

    log.info(
        "Lambda invocation started",
        function_name=getattr(context, "function_name", "unknown"),
        record_count=len(records),
    )

    if counter is None:
        log.info("Lambda invocation completed", processed=0, retry_count=0)
        return {"batchItemFailures": []}

    result = counter.run(process_records(counter.counter, records, log))

    processing_time_ms = (time.perf_counter() - start_time) * 1000
    log.info(
        "Lambda invocation completed",
        processed=result.processed_count,
        duplicates=result.duplicate_count,
        rejected=result.rejected_count,
        dropped=result.dropped_count,
        retry_count=len(result.batch_item_failures),
        processing_time_ms=round(processing_time_ms, 2),
    )

    return result.to_response()
