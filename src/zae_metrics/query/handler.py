"""Lambda handler for metric count queries."""

from typing import Any

from ..classifier import ErrorClass, classify
from ..config import Settings
from ..counter import MetricCounter, SyncMetricCounter
from ..exceptions import ValidationError
from ..logger import StructuredLogger
from ..models import DEFAULT_MAX_DATE_RANGE_DAYS, MetricQuery

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


def error_response(
    code: str,
    message: str,
    request_id: str,
    retryable: bool | None = None,
) -> dict[str, Any]:
    """Build the error payload returned to the caller."""
    error: dict[str, Any] = {"code": code, "message": message, "requestId": request_id}
    if retryable is not None:
        error["retryable"] = retryable
    return {"error": error}


async def execute_query(
    counter: MetricCounter,
    request: Any,
    request_id: str,
    max_range_days: int = DEFAULT_MAX_DATE_RANGE_DAYS,
    log: StructuredLogger = logger,
) -> dict[str, Any]:
    """
    Validate a query request and answer it.

    Returns:
        The validated request fields plus ``count``, or an error payload
        with code VALIDATION_ERROR, TRANSIENT_ERROR or INTERNAL_ERROR
    """
    query: MetricQuery | None = None
    try:
        query = MetricQuery.from_dict(request, max_range_days=max_range_days)
        count = await counter.query_count(query)
    except ValidationError as e:
        log.warning("validation failed", error=str(e), field=e.field)
        return error_response("VALIDATION_ERROR", str(e), request_id)
    except Exception as e:
        retryable = classify(e) is ErrorClass.TRANSIENT
        log.error(
            "query failed",
            exc_info=True,
            error=str(e),
            retryable=retryable,
            metric_id=query.metric_id if query else None,
            workspace_id=query.workspace_id if query else None,
            from_date=query.from_date if query else None,
            to_date=query.to_date if query else None,
        )
        return error_response(
            "TRANSIENT_ERROR" if retryable else "INTERNAL_ERROR",
            "query failed",
            request_id,
            retryable=retryable,
        )

    log.info("query completed", metric_id=query.metric_id, count=count)
    return {**query.to_dict(), "count": count}


def handler(request: Any, context: Any = None) -> dict[str, Any]:
    """
    Lambda handler for metric count queries.

    Request fields: ``metricId``, ``workspaceId``, optional ``userId``,
    ``fromDate`` and ``toDate`` (inclusive, ``YYYY-MM-DDThh``).

    Environment variables:
        ENV / TABLE_NAME: DynamoDB table (``feature-usage-{ENV}``)
        MAX_DATE_RANGE_DAYS: Maximum query span in days (default: 1825)
        LOG_LEVEL: Log threshold (default: INFO)

    Args:
        request: Query request payload
        context: Lambda context

    Returns:
        Response payload (see ``execute_query``)
    """
    request_id = getattr(context, "aws_request_id", None) or "local"

    try:
        settings = get_settings()
        counter = get_counter()
    except Exception as e:
        logger.error(
            "handler initialization failed",
            exc_info=True,
            request_id=request_id,
            error=str(e),
        )
        return error_response("INTERNAL_ERROR", "query failed", request_id, retryable=False)

    log = logger.bind(request_id=request_id)
    return counter.run(
        execute_query(
            counter.counter,
            request,
            request_id,
            max_range_days=settings.max_date_range_days,
            log=log,
        )
    )
