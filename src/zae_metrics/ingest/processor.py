"""SQS batch processor for metric updates."""

import asyncio
import json
import time as time_module
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..classifier import ErrorClass, classify
from ..counter import MetricCounter
from ..exceptions import ValidationError
from ..logger import StructuredLogger
from ..models import MetricUpdate

logger = StructuredLogger(__name__)


class RecordOutcome(str, Enum):
    """What happened to a single SQS record."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"  # invalid payload, dropped
    DROPPED = "dropped"  # permanent store error, dropped
    RETRY = "retry"  # transient or unclassified, reported for redelivery


@dataclass
class ProcessResult:
    """Result of processing one SQS batch."""

    processed_count: int = 0
    duplicate_count: int = 0
    rejected_count: int = 0
    dropped_count: int = 0
    batch_item_failures: list[str] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        """SQS partial batch response."""
        return {
            "batchItemFailures": [
                {"itemIdentifier": message_id} for message_id in self.batch_item_failures
            ]
        }


def parse_record_body(record: dict[str, Any]) -> Any:
    """
    Decode the JSON body of an SQS record.

    Raises:
        ValidationError: If the body is not valid JSON
    """
    body = record.get("body")
    try:
        return json.loads(body)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValidationError(
            "body",
            body,
            f"malformed JSON in message {record.get('messageId')}: {body}",
        ) from None


async def process_record(
    counter: MetricCounter,
    record: dict[str, Any],
    log: StructuredLogger = logger,
) -> RecordOutcome:
    """
    Validate and count one SQS record.

    Never raises: every failure is logged and mapped to an outcome.
    Validation failures and permanent errors are dropped; transient and
    unclassified errors are marked for retry.
    """
    message_id = record.get("messageId", "")

    try:
        update = MetricUpdate.from_dict(parse_record_body(record))
        result = await counter.increment(update, message_id)
    except ValidationError as e:
        log.warning(
            "record rejected: invalid input",
            message_id=message_id,
            error=str(e),
            field=e.field,
            permanent=True,
        )
        return RecordOutcome.REJECTED
    except Exception as e:
        error_class = classify(e)
        if error_class is ErrorClass.PERMANENT:
            log.error(
                "record failed: permanent error",
                exc_info=True,
                message_id=message_id,
                error=str(e),
                permanent=True,
            )
            return RecordOutcome.DROPPED

        if error_class is ErrorClass.TRANSIENT:
            message = "record failed: transient error, will retry"
        else:
            message = "record failed: unclassified error, treating as transient"
        log.warning(
            message,
            exc_info=True,
            message_id=message_id,
            error=str(e),
            transient=True,
        )
        return RecordOutcome.RETRY

    if result.duplicate:
        log.debug(
            "duplicate message skipped",
            message_id=message_id,
            workspace_id=update.workspace_id,
        )
        return RecordOutcome.DUPLICATE

    log.info(
        "record processed",
        message_id=message_id,
        workspace_id=update.workspace_id,
        metric_id=update.metric_id,
    )
    return RecordOutcome.PROCESSED


async def process_records(
    counter: MetricCounter,
    records: list[dict[str, Any]],
    log: StructuredLogger = logger,
) -> ProcessResult:
    """
    Process an SQS batch concurrently.

    Every record is handled independently; one record's failure never
    affects its siblings. Records to redeliver are collected into
    ``batch_item_failures``.

    Args:
        counter: Metric counter to write through
        records: SQS ``Records`` entries
        log: Logger (usually bound to the request id)

    Returns:
        ProcessResult with per-outcome counts and retry ids
    """
    start_time = time_module.perf_counter()
    log.info("Batch processing started", record_count=len(records))

    outcomes = await asyncio.gather(*(process_record(counter, record, log) for record in records))

    result = ProcessResult()
    for record, outcome in zip(records, outcomes, strict=True):
        if outcome is RecordOutcome.PROCESSED:
            result.processed_count += 1
        elif outcome is RecordOutcome.DUPLICATE:
            result.duplicate_count += 1
        elif outcome is RecordOutcome.REJECTED:
            result.rejected_count += 1
        elif outcome is RecordOutcome.DROPPED:
            result.dropped_count += 1
        else:
            result.batch_item_failures.append(record.get("messageId", ""))

    if result.batch_item_failures:
        log.warning(
            "batch partially failed",
            total=len(records),
            failed=len(result.batch_item_failures),
        )

    processing_time_ms = (time_module.perf_counter() - start_time) * 1000
    log.info(
        "Batch processing completed",
        processed_count=result.processed_count,
        duplicate_count=result.duplicate_count,
        rejected_count=result.rejected_count,
        dropped_count=result.dropped_count,
        retry_count=len(result.batch_item_failures),
        processing_time_ms=round(processing_time_ms, 2),
    )
    return result
