"""Command-line interface for zae-metrics."""

import asyncio
import os
import uuid
from collections.abc import Callable
from typing import Any

import click

from .config import DEFAULT_TTL_DAYS, resolve_table_name
from .counter import MetricCounter
from .exceptions import ConfigurationError, ValidationError
from .models import MetricQuery, MetricUpdate
from .repository import Repository
from .segments import plan_segments


def _table_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that talks to DynamoDB."""
    func = click.option(
        "--endpoint-url",
        envvar="AWS_ENDPOINT_URL",
        help=(
            "AWS endpoint URL "
            "(e.g., http://localhost:4566 for LocalStack, or other AWS-compatible services)"
        ),
    )(func)
    func = click.option(
        "--region",
        envvar="AWS_REGION",
        help="AWS region (default: use boto defaults)",
    )(func)
    func = click.option(
        "--table-name",
        help="DynamoDB table name (default: TABLE_NAME, or feature-usage-$ENV)",
    )(func)
    return func


def _repository(table_name: str | None, region: str | None, endpoint_url: str | None) -> Repository:
    try:
        name = table_name or resolve_table_name(os.environ)
    except ConfigurationError as e:
        raise click.UsageError(f"{e}. Pass --table-name or set TABLE_NAME/ENV.") from e
    return Repository(table_name=name, region=region, endpoint_url=endpoint_url)


@click.group()
@click.version_option(package_name="zae-metrics")
def cli() -> None:
    """zae-metrics usage counter CLI."""
    pass


@cli.command("create-table")
@_table_options
def create_table(table_name: str | None, region: str | None, endpoint_url: str | None) -> None:
    """Create the counter table (with TTL) if it doesn't exist."""
    repository = _repository(table_name, region, endpoint_url)

    async def _create() -> None:
        async with repository:
            await repository.create_table()

    asyncio.run(_create())
    click.echo(f"Table ready: {repository.table_name}")


@cli.command("delete-table")
@_table_options
@click.confirmation_option(prompt="Delete the table and every counter in it?")
def delete_table(table_name: str | None, region: str | None, endpoint_url: str | None) -> None:
    """Delete the counter table."""
    repository = _repository(table_name, region, endpoint_url)

    async def _delete() -> None:
        async with repository:
            await repository.delete_table()

    asyncio.run(_delete())
    click.echo(f"Table deleted: {repository.table_name}")


@cli.command()
@_table_options
@click.option("--workspace-id", required=True, help="Workspace identifier")
@click.option("--metric-id", required=True, help="Metric identifier")
@click.option("--count", type=int, default=1, show_default=True, help="Amount to add")
@click.option("--date", "date_hour", required=True, help="Hour bucket, YYYY-MM-DDThh (UTC)")
@click.option("--user-id", help="Also count under this user")
@click.option("--message-id", help="Delivery id used for deduplication (default: random)")
@click.option(
    "--ttl-days",
    type=click.IntRange(min=1),
    default=DEFAULT_TTL_DAYS,
    show_default=True,
    help="Counter retention in days",
)
def increment(
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    workspace_id: str,
    metric_id: str,
    count: int,
    date_hour: str,
    user_id: str | None,
    message_id: str | None,
    ttl_days: int,
) -> None:
    """Count one metric update."""
    payload: dict[str, Any] = {
        "workspaceId": workspace_id,
        "metricId": metric_id,
        "count": count,
        "date": date_hour,
    }
    if user_id:
        payload["userId"] = user_id
    try:
        update = MetricUpdate.from_dict(payload)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint=e.field) from e

    message_id = message_id or str(uuid.uuid4())
    repository = _repository(table_name, region, endpoint_url)

    async def _increment() -> bool:
        async with MetricCounter(repository, ttl_days=ttl_days) as counter:
            result = await counter.increment(update, message_id)
            return result.duplicate

    duplicate = asyncio.run(_increment())
    if duplicate:
        click.echo(f"Duplicate message {message_id}: not counted")
    else:
        click.echo(f"Counted {count} for {metric_id} (message {message_id})")


@cli.command()
@_table_options
@click.option("--workspace-id", required=True, help="Workspace identifier")
@click.option("--metric-id", required=True, help="Metric identifier")
@click.option("--from", "from_date", required=True, help="First hour, YYYY-MM-DDThh")
@click.option("--to", "to_date", required=True, help="Last hour (inclusive), YYYY-MM-DDThh")
@click.option("--user-id", help="Query the user-level counter instead of the workspace")
def query(
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    workspace_id: str,
    metric_id: str,
    from_date: str,
    to_date: str,
    user_id: str | None,
) -> None:
    """Print the total count of a metric over an hour range."""
    payload = {
        "workspaceId": workspace_id,
        "metricId": metric_id,
        "fromDate": from_date,
        "toDate": to_date,
    }
    if user_id:
        payload["userId"] = user_id
    try:
        metric_query = MetricQuery.from_dict(payload)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint=e.field) from e

    repository = _repository(table_name, region, endpoint_url)

    async def _query() -> int:
        async with MetricCounter(repository) as counter:
            return await counter.query_count(metric_query)

    click.echo(asyncio.run(_query()))


@cli.command()
@click.argument("from_date")
@click.argument("to_date")
def plan(from_date: str, to_date: str) -> None:
    """Show the hourly/daily reads a query over FROM_DATE..TO_DATE would issue."""
    try:
        segments = plan_segments(from_date, to_date)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    for segment in segments:
        click.echo(f"{segment.granularity.value:<7} {segment.from_date} .. {segment.to_date}")


if __name__ == "__main__":
    cli()
