"""Main MetricCounter implementation."""

import asyncio
import time
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from . import schema
from .config import DEFAULT_TTL_DAYS, Settings
from .exceptions import ConditionFailedError
from .models import (
    AddToCounter,
    CreateIfAbsent,
    Granularity,
    IncrementResult,
    MetricQuery,
    MetricUpdate,
    QuerySegment,
    TransactOp,
)
from .repository_protocol import MetricStoreProtocol
from .segments import plan_segments

T = TypeVar("T")

# Position of the dedup marker inside an increment transaction
DEDUP_OP_INDEX = 0


class MetricCounter:
    """
    Async usage counter over hourly and daily rollups.

    The counter is the only writer of counter records and dedup markers:

    - ``increment`` applies one message as a single transaction: a dedup
      marker plus an hourly and a daily add for every scope (workspace,
      and user when present)
    - ``query_count`` plans the range into hourly/daily segments, reads
      them concurrently and sums the counts

    Store failures are not caught here (except the duplicate-message case);
    callers classify them with ``classifier.classify``.
    """

    def __init__(
        self,
        repository: MetricStoreProtocol,
        ttl_days: int = DEFAULT_TTL_DAYS,
        page_size: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repository = repository
        self.ttl_days = ttl_days
        self.page_size = page_size
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "MetricCounter":
        """Build a counter backed by DynamoDB from process settings."""
        from .repository import Repository

        repository = Repository(
            table_name=settings.table_name,
            region=settings.region,
            endpoint_url=settings.endpoint_url,
        )
        return cls(repository, ttl_days=settings.ttl_days)

    @property
    def repository(self) -> MetricStoreProtocol:
        return self._repository

    async def close(self) -> None:
        """Close the underlying connections."""
        await self._repository.close()

    async def __aenter__(self) -> "MetricCounter":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _now_ms(self) -> int:
        """Current time in milliseconds."""
        return int(self._clock() * 1000)

    # -------------------------------------------------------------------------
    # Increment
    # -------------------------------------------------------------------------

    def build_increment_ops(self, update: MetricUpdate, message_id: str) -> list[TransactOp]:
        """
        Build the transaction for one message.

        The dedup marker is always the first operation, followed by hourly
        and daily adds for each scope.
        """
        now_ms = self._now_ms()
        ttl = schema.calculate_ttl(now_ms, self.ttl_days * schema.SECONDS_PER_DAY)

        ops: list[TransactOp] = [
            CreateIfAbsent(
                pk=schema.pk_dedup(message_id),
                sk=schema.sk_dedup(message_id),
                ttl=schema.calculate_ttl(now_ms, schema.DEDUP_TTL_SECONDS),
            )
        ]

        for scope in update.scopes():
            pk = schema.pk_scope(scope.type, scope.id, update.metric_id)
            for granularity in (Granularity.HOURLY, Granularity.DAILY):
                ops.append(
                    AddToCounter(
                        pk=pk,
                        sk=schema.sk_counter(granularity, update.date),
                        delta=update.count,
                        ttl=ttl,
                    )
                )

        return ops

    async def increment(self, update: MetricUpdate, message_id: str) -> IncrementResult:
        """
        Count one message exactly once.

        Args:
            update: Validated metric update
            message_id: Delivery id of the message (same across redeliveries)

        Returns:
            IncrementResult with ``duplicate=True`` if ``message_id`` was
            already counted; in that case no counter changed
        """
        ops = self.build_increment_ops(update, message_id)
        try:
            await self._repository.transact_write(ops)
        except ConditionFailedError as e:
            if e.op_index == DEDUP_OP_INDEX:
                return IncrementResult(duplicate=True)
            raise
        return IncrementResult(duplicate=False)

    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    async def query_count(self, query: MetricQuery) -> int:
        """
        Total count of a metric for one scope over an inclusive hour range.

        Each planned segment is read concurrently; any failed read fails
        the whole query and cancels the reads still in flight.
        """
        scope = query.scope
        pk = schema.pk_scope(scope.type, scope.id, query.metric_id)
        segments = plan_segments(query.from_date, query.to_date)

        tasks = [asyncio.ensure_future(self._query_segment(pk, segment)) for segment in segments]
        try:
            counts = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        return sum(counts)

    async def _query_segment(self, pk: str, segment: QuerySegment) -> int:
        """Sum all counters of one segment, following pagination."""
        sk_from = schema.sk_counter(segment.granularity, segment.from_date)
        sk_to = schema.sk_counter(segment.granularity, segment.to_date)

        total = 0
        start_key: Any = None
        while True:
            page = await self._repository.range_read(
                pk, sk_from, sk_to, start_key=start_key, page_size=self.page_size
            )
            total += sum(item.count for item in page.items)
            start_key = page.next_key
            if not start_key:
                return total


class SyncMetricCounter:
    """
    Synchronous metric counter.

    Wraps MetricCounter, running async operations in a private event loop
    that lives as long as this object, so the store client is created once
    and reused across calls (e.g. across Lambda invocations).
    """

    def __init__(self, counter: MetricCounter) -> None:
        self._counter = counter
        self._loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncMetricCounter":
        return cls(MetricCounter.from_settings(settings))

    @property
    def counter(self) -> MetricCounter:
        return self._counter

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        """Get or create the event loop."""
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run a coroutine in the event loop."""
        return self._get_loop().run_until_complete(coro)

    def close(self) -> None:
        """Close the underlying connections and the event loop."""
        if self._loop is None or self._loop.is_closed():
            return
        self.run(self._counter.close())
        self._loop.close()
        self._loop = None

    def __enter__(self) -> "SyncMetricCounter":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def increment(self, update: MetricUpdate, message_id: str) -> IncrementResult:
        """Count one message exactly once."""
        return self.run(self._counter.increment(update, message_id))

    def query_count(self, query: MetricQuery) -> int:
        """Total count of a metric for one scope over an inclusive hour range."""
        return self.run(self._counter.query_count(query))
