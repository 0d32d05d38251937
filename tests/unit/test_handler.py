"""Tests for the Lambda handlers."""

import importlib
import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from zae_metrics import InMemoryRepository, MetricCounter, SyncMetricCounter
from zae_metrics.config import Settings
from zae_metrics.ingest.handler import handler as ingest_handler
from zae_metrics.logger import StructuredLogger
from zae_metrics.models import MetricQuery, MetricUpdate
from zae_metrics.query.handler import error_response, execute_query
from zae_metrics.query.handler import handler as query_handler

# The packages re-export their `handler` functions under the module names
ingest_handler_module = importlib.import_module("zae_metrics.ingest.handler")
query_handler_module = importlib.import_module("zae_metrics.query.handler")


def _record(message_id: str, **body) -> dict:
    payload = {"workspaceId": "ws-1", "metricId": "exports", "count": 1, "date": "2024-06-15T05"}
    payload.update(body)
    return {"messageId": message_id, "body": json.dumps(payload)}


def _request(**overrides) -> dict:
    request = {
        "metricId": "exports",
        "workspaceId": "ws-1",
        "fromDate": "2024-06-15T00",
        "toDate": "2024-06-15T23",
    }
    request.update(overrides)
    return request


@pytest.fixture
def mock_context() -> MagicMock:
    context = MagicMock()
    context.aws_request_id = "req-123"
    context.function_name = "feature-usage-ingest"
    return context


@pytest.fixture
def sync_counter():
    counter = SyncMetricCounter(MetricCounter(InMemoryRepository()))
    yield counter
    counter.close()


@pytest.fixture
def log() -> MagicMock:
    return MagicMock(spec=StructuredLogger)


class TestIngestHandler:
    """Tests for the SQS ingestion handler."""

    def test_empty_event(self, mock_context: MagicMock) -> None:
        """No records means no counter is built."""
        with patch.object(ingest_handler_module, "get_counter") as get_counter:
            assert ingest_handler({"Records": []}, mock_context) == {"batchItemFailures": []}
            assert ingest_handler({}, mock_context) == {"batchItemFailures": []}

        get_counter.assert_not_called()

    def test_processes_records(
        self, mock_context: MagicMock, sync_counter: SyncMetricCounter
    ) -> None:
        event = {"Records": [_record("m-1", count=2), _record("m-2", count=3, userId="u-1")]}

        with patch.object(ingest_handler_module, "get_counter", return_value=sync_counter):
            response = ingest_handler(event, mock_context)

        assert response == {"batchItemFailures": []}
        total = sync_counter.query_count(MetricQuery.from_dict(_request()))
        assert total == 5

    def test_reports_retryable_failures(
        self, mock_context: MagicMock, sync_counter: SyncMetricCounter
    ) -> None:
        event = {"Records": [_record("m-1"), _record("m-2"), _record("m-3", count=0)]}
        throttled = ClientError(
            {"Error": {"Code": "ThrottlingException", "Message": "slow down"}},
            "TransactWriteItems",
        )
        original = sync_counter.counter.increment

        async def increment(update, message_id):
            if message_id == "m-2":
                raise throttled
            return await original(update, message_id)

        with (
            patch.object(ingest_handler_module, "get_counter", return_value=sync_counter),
            patch.object(sync_counter.counter, "increment", side_effect=increment),
        ):
            response = ingest_handler(event, mock_context)

        assert response == {"batchItemFailures": [{"itemIdentifier": "m-2"}]}

    def test_get_counter_is_cached(self, monkeypatch) -> None:
        monkeypatch.setenv("ENV", "test")
        monkeypatch.delenv("TABLE_NAME", raising=False)
        monkeypatch.setattr(ingest_handler_module, "_settings", None)
        monkeypatch.setattr(ingest_handler_module, "logger", StructuredLogger("test"))
        monkeypatch.setattr(ingest_handler_module, "_counter", None)

        first = ingest_handler_module.get_counter()
        second = ingest_handler_module.get_counter()

        assert first is second
        assert first.counter.repository.table_name == "feature-usage-test"


class TestExecuteQuery:
    """Tests for execute_query."""

    async def test_success(self, log: MagicMock) -> None:
        counter = MetricCounter(InMemoryRepository())

        response = await execute_query(counter, _request(userId="u-1"), "req-1", log=log)

        assert response == {**_request(userId="u-1"), "count": 0}

    async def test_validation_error(self, log: MagicMock) -> None:
        counter = MetricCounter(InMemoryRepository())

        response = await execute_query(
            counter, _request(toDate="2024-06-14T00"), "req-1", log=log
        )

        assert response == {
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "toDate must not be before fromDate",
                "requestId": "req-1",
            }
        }

    async def test_range_limit(self, log: MagicMock) -> None:
        counter = MetricCounter(InMemoryRepository())

        response = await execute_query(
            counter, _request(toDate="2024-07-15T00"), "req-1", max_range_days=7, log=log
        )

        assert response["error"]["code"] == "VALIDATION_ERROR"
        assert "7 days" in response["error"]["message"]

    async def test_transient_error(self, log: MagicMock) -> None:
        counter = MagicMock(spec=MetricCounter)
        counter.query_count.side_effect = ClientError(
            {
                "Error": {"Code": "ProvisionedThroughputExceededException", "Message": "busy"},
                "ResponseMetadata": {"HTTPStatusCode": 400},
            },
            "Query",
        )

        response = await execute_query(counter, _request(), "req-1", log=log)

        assert response == error_response("TRANSIENT_ERROR", "query failed", "req-1", True)
        assert log.error.called

    async def test_internal_error(self, log: MagicMock) -> None:
        counter = MagicMock(spec=MetricCounter)
        counter.query_count.side_effect = KeyError("secret detail")

        response = await execute_query(counter, _request(), "req-1", log=log)

        assert response["error"]["code"] == "INTERNAL_ERROR"
        assert response["error"]["retryable"] is False
        assert "secret" not in response["error"]["message"]


class TestQueryHandler:
    """Tests for the query Lambda handler."""

    def test_handler(self, mock_context: MagicMock, sync_counter: SyncMetricCounter) -> None:
        sync_counter.increment(
            MetricUpdate(workspace_id="ws-1", metric_id="exports", count=4, date="2024-06-15T07"),
            "m-1",
        )

        with (
            patch.object(query_handler_module, "get_counter", return_value=sync_counter),
            patch.object(
                query_handler_module,
                "get_settings",
                return_value=Settings(table_name="t", max_date_range_days=30),
            ),
        ):
            response = query_handler(_request(), mock_context)

        assert response["count"] == 4
        assert response["metricId"] == "exports"

    def test_handler_validation_error_uses_request_id(
        self, mock_context: MagicMock, sync_counter: SyncMetricCounter
    ) -> None:
        with (
            patch.object(query_handler_module, "get_counter", return_value=sync_counter),
            patch.object(
                query_handler_module, "get_settings", return_value=Settings(table_name="t")
            ),
        ):
            response = query_handler({"metricId": "exports"}, mock_context)

        assert response["error"]["code"] == "VALIDATION_ERROR"
        assert response["error"]["requestId"] == "req-123"

    def test_error_response_shape(self) -> None:
        assert error_response("INTERNAL_ERROR", "query failed", "r") == {
            "error": {"code": "INTERNAL_ERROR", "message": "query failed", "requestId": "r"}
        }

    def test_missing_table_configuration(self, mock_context: MagicMock, monkeypatch) -> None:
        """An unconfigured table is reported as an internal error, not raised."""
        monkeypatch.delenv("ENV", raising=False)
        monkeypatch.delenv("TABLE_NAME", raising=False)
        monkeypatch.setattr(query_handler_module, "_settings", None)
        monkeypatch.setattr(query_handler_module, "_counter", None)
        monkeypatch.setattr(query_handler_module, "logger", StructuredLogger("test"))

        response = query_handler(_request(), mock_context)

        assert response == {
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "query failed",
                "requestId": "req-123",
                "retryable": False,
            }
        }


class TestHandlerLogLevel:
    """LOG_LEVEL from the loaded settings drives the handler loggers."""

    @pytest.mark.parametrize("module", [ingest_handler_module, query_handler_module])
    def test_get_settings_applies_log_level(self, module, monkeypatch) -> None:
        monkeypatch.setenv("ENV", "test")
        monkeypatch.setenv("LOG_LEVEL", "error")
        monkeypatch.setattr(module, "_settings", None)
        monkeypatch.setattr(module, "logger", StructuredLogger(module.__name__, level="INFO"))

        settings = module.get_settings()

        assert settings.log_level == "ERROR"
        assert module.logger.level == "ERROR"
        assert not module.logger.bind(request_id="r").is_enabled_for("WARNING")

    def test_ingest_logs_respect_settings_level(
        self, mock_context: MagicMock, sync_counter: SyncMetricCounter, monkeypatch, capsys
    ) -> None:
        monkeypatch.setenv("ENV", "test")
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        monkeypatch.setattr(ingest_handler_module, "_settings", None)
        monkeypatch.setattr(ingest_handler_module, "_counter", None)
        debug_logger = StructuredLogger(ingest_handler_module.__name__, level="DEBUG")
        monkeypatch.setattr(ingest_handler_module, "logger", debug_logger)

        with patch.object(SyncMetricCounter, "from_settings", return_value=sync_counter):
            response = ingest_handler({"Records": [_record("m-1")]}, mock_context)

        assert response == {"batchItemFailures": []}
        assert "Lambda invocation" not in capsys.readouterr().out
