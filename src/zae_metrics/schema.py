"""DynamoDB schema definitions and key builders."""

from typing import Any

from .models import Granularity, ScopeType

# Partition key prefixes
WORKSPACE_PREFIX = "WSP#"
USER_PREFIX = "USR#"
METRIC_PREFIX = "#MET#"
DEDUP_PREFIX = "DEDUP#"

# Sort key prefixes
SK_HOURLY = "H#"
SK_DAILY = "D#"

# Attribute names
ATTR_PK = "pk"
ATTR_SK = "sk"
ATTR_COUNT = "count"
ATTR_TTL = "ttl"

# Must exceed SQS maxReceiveCount * VisibilityTimeout so every redelivery
# of a message still finds its marker (3 receives * 60s by default).
DEDUP_TTL_SECONDS = 24 * 60 * 60

SECONDS_PER_DAY = 86400

_SCOPE_PREFIXES = {
    ScopeType.WORKSPACE: WORKSPACE_PREFIX,
    ScopeType.USER: USER_PREFIX,
}

_GRANULARITY_PREFIXES = {
    Granularity.HOURLY: SK_HOURLY,
    Granularity.DAILY: SK_DAILY,
}


def pk_scope(scope_type: ScopeType, scope_id: str, metric_id: str) -> str:
    """Build partition key for a scope's metric counters."""
    return f"{_SCOPE_PREFIXES[ScopeType(scope_type)]}{scope_id}{METRIC_PREFIX}{metric_id}"


def sk_counter(granularity: Granularity, date_hour: str) -> str:
    """
    Build sort key for a counter record.

    Hourly keys keep the full ``YYYY-MM-DDThh`` value, daily keys are
    truncated to ``YYYY-MM-DD``.
    """
    granularity = Granularity(granularity)
    value = date_hour[:10] if granularity is Granularity.DAILY else date_hour
    return f"{_GRANULARITY_PREFIXES[granularity]}{value}"


def pk_dedup(message_id: str) -> str:
    """Build partition key for a deduplication marker."""
    return f"{DEDUP_PREFIX}{message_id}"


def sk_dedup(message_id: str) -> str:
    """Build sort key for a deduplication marker."""
    return f"{DEDUP_PREFIX}{message_id}"


def get_table_definition(table_name: str) -> dict[str, Any]:
    """
    Get the DynamoDB table definition for CreateTable.

    Returns a dictionary suitable for boto3 create_table().
    """
    return {
        "TableName": table_name,
        "BillingMode": "PAY_PER_REQUEST",
        "AttributeDefinitions": [
            {"AttributeName": ATTR_PK, "AttributeType": "S"},
            {"AttributeName": ATTR_SK, "AttributeType": "S"},
        ],
        "KeySchema": [
            {"AttributeName": ATTR_PK, "KeyType": "HASH"},
            {"AttributeName": ATTR_SK, "KeyType": "RANGE"},
        ],
    }


def get_ttl_specification() -> dict[str, Any]:
    """Get the TimeToLiveSpecification for UpdateTimeToLive."""
    return {"Enabled": True, "AttributeName": ATTR_TTL}


def calculate_ttl(now_ms: int, ttl_seconds: int) -> int:
    """Calculate TTL timestamp (epoch seconds)."""
    return (now_ms // 1000) + ttl_seconds
