"""Environment configuration.

Handlers read their settings once per process from environment variables:

- ``TABLE_NAME``: explicit table name (wins over ``ENV``)
- ``ENV``: environment suffix, table name becomes ``feature-usage-{ENV}``
- ``TTL_DAYS``: counter retention window in days (default: 90)
- ``MAX_DATE_RANGE_DAYS``: maximum query span in days (default: 1825)
- ``AWS_REGION`` / ``AWS_ENDPOINT_URL``: DynamoDB client overrides
- ``LOG_LEVEL``: structured log threshold (default: INFO)
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .exceptions import ConfigurationError
from .models import DEFAULT_MAX_DATE_RANGE_DAYS

TABLE_NAME_PREFIX = "feature-usage-"
DEFAULT_TTL_DAYS = 90
DEFAULT_LOG_LEVEL = "INFO"


def _positive_int(value: str | None, default: int) -> int:
    """Parse a positive integer, falling back to ``default`` when unset or invalid."""
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def resolve_table_name(environ: Mapping[str, str]) -> str:
    """Resolve table name from ``TABLE_NAME`` or ``ENV``.

    Raises:
        ConfigurationError: If neither variable is set
    """
    table_name = environ.get("TABLE_NAME")
    if table_name:
        return table_name

    env = environ.get("ENV")
    if not env:
        raise ConfigurationError("ENV", "ENV environment variable is not set")
    return f"{TABLE_NAME_PREFIX}{env}"


@dataclass(frozen=True)
class Settings:
    """Process configuration, immutable once loaded."""

    table_name: str
    ttl_days: int = DEFAULT_TTL_DAYS
    max_date_range_days: int = DEFAULT_MAX_DATE_RANGE_DAYS
    region: str | None = None
    endpoint_url: str | None = None
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Load settings from ``environ`` (defaults to ``os.environ``)."""
        env = os.environ if environ is None else environ
        return cls(
            table_name=resolve_table_name(env),
            ttl_days=_positive_int(env.get("TTL_DAYS"), DEFAULT_TTL_DAYS),
            max_date_range_days=_positive_int(
                env.get("MAX_DATE_RANGE_DAYS"), DEFAULT_MAX_DATE_RANGE_DAYS
            ),
            region=env.get("AWS_REGION") or None,
            endpoint_url=env.get("AWS_ENDPOINT_URL") or None,
            log_level=(env.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )
