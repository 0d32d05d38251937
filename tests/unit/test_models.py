"""Tests for models and payload validation."""

from datetime import UTC, datetime

import pytest

from zae_metrics.exceptions import ValidationError
from zae_metrics.models import (
    MetricQuery,
    MetricUpdate,
    Scope,
    ScopeType,
    parse_date_hour,
    validate_date_hour,
    validate_identifier,
)


def _update_payload(**overrides):
    payload = {
        "workspaceId": "ws-1",
        "metricId": "exports",
        "count": 3,
        "date": "2024-06-15T05",
    }
    payload.update(overrides)
    return payload


def _query_payload(**overrides):
    payload = {
        "metricId": "exports",
        "workspaceId": "ws-1",
        "fromDate": "2024-06-15T00",
        "toDate": "2024-06-16T23",
    }
    payload.update(overrides)
    return payload


class TestIdentifiers:
    """Tests for identifier validation."""

    @pytest.mark.parametrize("value", ["ws-1", "A_b-9", "x" * 128])
    def test_valid(self, value: str) -> None:
        assert validate_identifier(value, "workspaceId") == value

    @pytest.mark.parametrize("value", [None, "", 42])
    def test_missing(self, value) -> None:
        with pytest.raises(ValidationError, match="workspaceId is required"):
            validate_identifier(value, "workspaceId")

    def test_too_long(self) -> None:
        with pytest.raises(ValidationError, match="at most 128 characters"):
            validate_identifier("x" * 129, "metricId")

    @pytest.mark.parametrize("value", ["ws#1", "ws 1", "ws/1", "wś"])
    def test_invalid_characters(self, value: str) -> None:
        with pytest.raises(ValidationError, match="alphanumeric") as exc_info:
            validate_identifier(value, "workspaceId")
        assert exc_info.value.field == "workspaceId"
        assert exc_info.value.value == value


class TestDateHour:
    """Tests for date-hour parsing."""

    def test_parse(self) -> None:
        assert parse_date_hour("2024-06-15T05") == datetime(2024, 6, 15, 5, tzinfo=UTC)

    @pytest.mark.parametrize(
        "value", ["2024-06-15", "2024-06-15T24", "2024-13-01T00", "2024-06-15T5", "garbage"]
    )
    def test_bad_format(self, value: str) -> None:
        with pytest.raises(ValidationError, match="YYYY-MM-DDThh"):
            validate_date_hour(value, "date")

    @pytest.mark.parametrize("value", ["2023-02-29T00", "2024-04-31T10"])
    def test_impossible_calendar_date(self, value: str) -> None:
        with pytest.raises(ValidationError, match="invalid calendar date"):
            validate_date_hour(value, "date")

    def test_leap_day(self) -> None:
        assert validate_date_hour("2024-02-29T23", "date") == "2024-02-29T23"


class TestMetricUpdate:
    """Tests for MetricUpdate.from_dict."""

    def test_valid(self) -> None:
        update = MetricUpdate.from_dict(_update_payload(userId="u-1"))

        assert update == MetricUpdate(
            workspace_id="ws-1",
            metric_id="exports",
            count=3,
            date="2024-06-15T05",
            user_id="u-1",
        )

    def test_scopes_workspace_only(self) -> None:
        update = MetricUpdate.from_dict(_update_payload())
        assert update.scopes() == [Scope(ScopeType.WORKSPACE, "ws-1")]

    def test_scopes_with_user(self) -> None:
        update = MetricUpdate.from_dict(_update_payload(userId="u-1"))
        assert update.scopes() == [Scope.workspace("ws-1"), Scope.user("u-1")]

    def test_null_user_is_absent(self) -> None:
        assert MetricUpdate.from_dict(_update_payload(userId=None)).user_id is None

    def test_empty_user_rejected(self) -> None:
        with pytest.raises(ValidationError, match="userId"):
            MetricUpdate.from_dict(_update_payload(userId=""))

    @pytest.mark.parametrize("body", [None, [], "text", 5])
    def test_body_must_be_object(self, body) -> None:
        with pytest.raises(ValidationError, match="message body must be a non-null object"):
            MetricUpdate.from_dict(body)

    @pytest.mark.parametrize("count", [0, -1, 1.5, "3", True, None, float("inf")])
    def test_invalid_count(self, count) -> None:
        with pytest.raises(ValidationError, match="count must be a positive integer"):
            MetricUpdate.from_dict(_update_payload(count=count))

    def test_count_upper_bound(self) -> None:
        assert MetricUpdate.from_dict(_update_payload(count=1_000_000)).count == 1_000_000
        with pytest.raises(ValidationError, match="count must be at most 1000000"):
            MetricUpdate.from_dict(_update_payload(count=1_000_001))

    def test_integral_float_count_accepted(self) -> None:
        update = MetricUpdate.from_dict(_update_payload(count=4.0))
        assert update.count == 4
        assert isinstance(update.count, int)

    def test_missing_metric(self) -> None:
        payload = _update_payload()
        del payload["metricId"]
        with pytest.raises(ValidationError) as exc_info:
            MetricUpdate.from_dict(payload)
        assert exc_info.value.field == "metricId"

    def test_invalid_date(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            MetricUpdate.from_dict(_update_payload(date="2024-06-15 05:00"))
        assert exc_info.value.field == "date"

    def test_schema_version(self) -> None:
        assert MetricUpdate.from_dict(_update_payload(schemaVersion=2)).schema_version == 2
        with pytest.raises(ValidationError, match="schemaVersion"):
            MetricUpdate.from_dict(_update_payload(schemaVersion=0))


class TestMetricQuery:
    """Tests for MetricQuery.from_dict."""

    def test_valid(self) -> None:
        query = MetricQuery.from_dict(_query_payload())

        assert query.metric_id == "exports"
        assert query.scope == Scope.workspace("ws-1")

    def test_user_scope(self) -> None:
        query = MetricQuery.from_dict(_query_payload(userId="u-1"))
        assert query.scope == Scope.user("u-1")

    def test_to_dict_round_trip(self) -> None:
        payload = _query_payload(userId="u-1")
        assert MetricQuery.from_dict(payload).to_dict() == payload

    def test_to_dict_omits_missing_user(self) -> None:
        assert "userId" not in MetricQuery.from_dict(_query_payload()).to_dict()

    def test_single_hour(self) -> None:
        query = MetricQuery.from_dict(_query_payload(toDate="2024-06-15T00"))
        assert query.from_date == query.to_date

    def test_reversed_range(self) -> None:
        with pytest.raises(ValidationError, match="toDate must not be before fromDate"):
            MetricQuery.from_dict(_query_payload(fromDate="2024-06-15T05", toDate="2024-06-15T04"))

    def test_range_limit(self) -> None:
        MetricQuery.from_dict(_query_payload(toDate="2024-06-25T23"), max_range_days=10)
        with pytest.raises(ValidationError, match="date range exceeds maximum of 10 days"):
            MetricQuery.from_dict(_query_payload(toDate="2024-06-26T00"), max_range_days=10)

    def test_default_range_limit(self) -> None:
        with pytest.raises(ValidationError, match="1825 days"):
            MetricQuery.from_dict(_query_payload(fromDate="2019-01-01T00", toDate="2024-06-15T00"))

    def test_request_must_be_object(self) -> None:
        with pytest.raises(ValidationError, match="request must be a non-null object"):
            MetricQuery.from_dict(None)

    def test_invalid_identifier(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            MetricQuery.from_dict(_query_payload(workspaceId="ws#1"))
        assert exc_info.value.field == "workspaceId"
