"""Lambda ingestion of metric updates from SQS."""

from .handler import handler
from .processor import ProcessResult, RecordOutcome, process_record, process_records

__all__ = [
    "handler",
    "process_records",
    "process_record",
    "ProcessResult",
    "RecordOutcome",
]
