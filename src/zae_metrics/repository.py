"""DynamoDB repository for metric counters."""

import re
from typing import Any

from aiobotocore.config import AioConfig
from aiobotocore.session import AioSession, get_session
from botocore.exceptions import ClientError

from . import schema
from .exceptions import ConditionFailedError
from .models import AddToCounter, CounterPage, CounterRecord, CreateIfAbsent, TransactOp

CONNECT_TIMEOUT_SECONDS = 3.0
READ_TIMEOUT_SECONDS = 5.0

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailed"

# "Transaction cancelled, please refer cancellation reasons for specific
# reasons [ConditionalCheckFailed, None]"
_REASONS_IN_MESSAGE = re.compile(r"\[([^\]]*)\]\s*$")


class Repository:
    """
    Async DynamoDB repository for metric counters.

    Implements MetricStoreProtocol on a single table keyed by ``pk``/``sk``.
    The client is created lazily on first use and reused until ``close()``;
    connect and read timeouts are fixed at construction.
    """

    def __init__(
        self,
        table_name: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        read_timeout: float = READ_TIMEOUT_SECONDS,
    ) -> None:
        self._table_name = table_name
        self.region = region
        self.endpoint_url = endpoint_url
        self._config = AioConfig(connect_timeout=connect_timeout, read_timeout=read_timeout)
        self._session: AioSession | None = None
        self._client: Any = None

    @property
    def table_name(self) -> str:
        return self._table_name

    async def _get_client(self) -> Any:
        """Get or create the DynamoDB client."""
        if self._client is None:
            self._session = get_session()
            self._client = await self._session.create_client(
                "dynamodb",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
                config=self._config,
            ).__aenter__()
        return self._client

    async def close(self) -> None:
        """Close the DynamoDB client."""
        if self._client is not None:
            await self._client.__aexit__(None, None, None)
            self._client = None
            self._session = None

    async def __aenter__(self) -> "Repository":
        await self._get_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Table operations
    # -------------------------------------------------------------------------

    async def create_table(self) -> None:
        """Create the DynamoDB table with TTL enabled, if it doesn't exist."""
        client = await self._get_client()
        definition = schema.get_table_definition(self.table_name)

        try:
            await client.create_table(**definition)
            # Wait for table to be active
            waiter = client.get_waiter("table_exists")
            await waiter.wait(TableName=self.table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceInUseException":
                raise
            return

        await client.update_time_to_live(
            TableName=self.table_name,
            TimeToLiveSpecification=schema.get_ttl_specification(),
        )

    async def delete_table(self) -> None:
        """Delete the DynamoDB table."""
        client = await self._get_client()
        try:
            await client.delete_table(TableName=self.table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise

    # -------------------------------------------------------------------------
    # Transactional writes
    # -------------------------------------------------------------------------

    def build_counter_update(self, op: AddToCounter) -> dict[str, Any]:
        """Build an Update that atomically adds to a counter (for use in transactions)."""
        return {
            "Update": {
                "TableName": self.table_name,
                "Key": {
                    schema.ATTR_PK: {"S": op.pk},
                    schema.ATTR_SK: {"S": op.sk},
                },
                "UpdateExpression": "ADD #count :inc SET #ttl = :ttl",
                "ExpressionAttributeNames": {
                    "#count": schema.ATTR_COUNT,
                    "#ttl": schema.ATTR_TTL,
                },
                "ExpressionAttributeValues": {
                    ":inc": {"N": str(op.delta)},
                    ":ttl": {"N": str(op.ttl)},
                },
            }
        }

    def build_conditional_put(self, op: CreateIfAbsent) -> dict[str, Any]:
        """Build a Put that fails if the key exists (for use in transactions)."""
        return {
            "Put": {
                "TableName": self.table_name,
                "Item": {
                    schema.ATTR_PK: {"S": op.pk},
                    schema.ATTR_SK: {"S": op.sk},
                    schema.ATTR_TTL: {"N": str(op.ttl)},
                },
                "ConditionExpression": "attribute_not_exists(#pk)",
                "ExpressionAttributeNames": {"#pk": schema.ATTR_PK},
            }
        }

    def build_transact_item(self, op: TransactOp) -> dict[str, Any]:
        """Translate a store operation into a TransactWriteItems entry."""
        if isinstance(op, AddToCounter):
            return self.build_counter_update(op)
        if isinstance(op, CreateIfAbsent):
            return self.build_conditional_put(op)
        raise TypeError(f"Unsupported transaction operation: {op!r}")

    async def transact_write(self, ops: list[TransactOp]) -> None:
        """
        Execute a transactional write.

        Raises:
            ConditionFailedError: If a conditional put was rejected because
                its key exists
            ClientError: Any other DynamoDB failure, unchanged
        """
        if not ops:
            return

        client = await self._get_client()
        items = [self.build_transact_item(op) for op in ops]

        try:
            await client.transact_write_items(TransactItems=items)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "TransactionCanceledException":
                raise
            op_index = _conditional_check_index(e)
            if op_index is None:
                raise
            raise ConditionFailedError(op_index, cause=e) from e

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def range_read(
        self,
        pk: str,
        sk_from: str,
        sk_to: str,
        start_key: Any = None,
        page_size: int | None = None,
    ) -> CounterPage:
        """Read one page of counters in a partition between two sort keys."""
        client = await self._get_client()

        query_args: dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": "#pk = :pk AND #sk BETWEEN :from_sk AND :to_sk",
            "ProjectionExpression": "#pk, #sk, #count, #ttl",
            "ExpressionAttributeNames": {
                "#pk": schema.ATTR_PK,
                "#sk": schema.ATTR_SK,
                "#count": schema.ATTR_COUNT,
                "#ttl": schema.ATTR_TTL,
            },
            "ExpressionAttributeValues": {
                ":pk": {"S": pk},
                ":from_sk": {"S": sk_from},
                ":to_sk": {"S": sk_to},
            },
        }
        if start_key:
            query_args["ExclusiveStartKey"] = start_key
        if page_size:
            query_args["Limit"] = page_size

        response = await client.query(**query_args)

        return CounterPage(
            items=[self._deserialize_counter(item) for item in response.get("Items", [])],
            next_key=response.get("LastEvaluatedKey"),
        )

    async def get_count(self, pk: str, sk: str) -> int | None:
        """Get a single counter's value."""
        client = await self._get_client()

        response = await client.get_item(
            TableName=self.table_name,
            Key={
                schema.ATTR_PK: {"S": pk},
                schema.ATTR_SK: {"S": sk},
            },
        )

        item = response.get("Item")
        if not item:
            return None

        return self._deserialize_counter(item).count

    async def get_item(self, pk: str, sk: str) -> dict[str, Any] | None:
        """Get a raw item (markers included), or None."""
        client = await self._get_client()
        response = await client.get_item(
            TableName=self.table_name,
            Key={
                schema.ATTR_PK: {"S": pk},
                schema.ATTR_SK: {"S": sk},
            },
        )
        return response.get("Item")

    # -------------------------------------------------------------------------
    # Serialization helpers
    # -------------------------------------------------------------------------

    def _deserialize_counter(self, item: dict[str, Any]) -> CounterRecord:
        """Deserialize a DynamoDB item to CounterRecord."""
        ttl = item.get(schema.ATTR_TTL, {}).get("N")
        return CounterRecord(
            pk=item.get(schema.ATTR_PK, {}).get("S", ""),
            sk=item.get(schema.ATTR_SK, {}).get("S", ""),
            count=int(item.get(schema.ATTR_COUNT, {}).get("N", "0")),
            ttl=int(ttl) if ttl is not None else None,
        )


def _conditional_check_index(error: ClientError) -> int | None:
    """Index of the first ConditionalCheckFailed cancellation reason, if any."""
    reasons = error.response.get("CancellationReasons")
    if reasons:
        codes = [reason.get("Code") for reason in reasons]
    else:
        match = _REASONS_IN_MESSAGE.search(error.response.get("Error", {}).get("Message", ""))
        if not match:
            return None
        codes = [code.strip() for code in match.group(1).split(",")]

    for index, code in enumerate(codes):
        if code == CONDITIONAL_CHECK_FAILED:
            return index
    return None
