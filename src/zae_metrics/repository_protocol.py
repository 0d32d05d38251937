"""Store protocol for metric counter backends.

This module defines the MetricStoreProtocol that all storage backends must
implement. The protocol uses Python's typing.Protocol with the
@runtime_checkable decorator, enabling duck typing and isinstance() checks
at runtime.
"""

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models import CounterPage, TransactOp


@runtime_checkable
class MetricStoreProtocol(Protocol):
    """
    Protocol for transactional keyed stores holding metric counters.

    Backends (DynamoDB, In-Memory) implement two primitives:

    - **transact_write**: all-or-nothing write of additive upserts and
      conditional creates
    - **range_read**: paginated read of one partition between two sort keys

    Example:
        class MyBackend:
            @property
            def table_name(self) -> str:
                return "metrics"

            async def transact_write(self, ops): ...

        assert isinstance(MyBackend(), MetricStoreProtocol)
    """

    @property
    def table_name(self) -> str:
        """Name of the underlying table."""
        ...

    async def close(self) -> None:
        """
        Release backend resources.

        Safe to call multiple times.
        """
        ...

    async def transact_write(self, ops: list["TransactOp"]) -> None:
        """
        Apply all operations atomically.

        Args:
            ops: AddToCounter and CreateIfAbsent operations

        Raises:
            ConditionFailedError: If a CreateIfAbsent key already exists.
                ``op_index`` identifies the operation; nothing was applied.
            Exception: Any other backend failure, unchanged
        """
        ...

    async def range_read(
        self,
        pk: str,
        sk_from: str,
        sk_to: str,
        start_key: Any = None,
        page_size: int | None = None,
    ) -> "CounterPage":
        """
        Read one page of counters with ``sk_from <= sk <= sk_to``.

        Args:
            pk: Partition key
            sk_from: Lowest sort key (inclusive)
            sk_to: Highest sort key (inclusive)
            start_key: ``next_key`` from the previous page, None for the first
            page_size: Maximum items per page (backend default when None)

        Returns:
            CounterPage whose ``next_key`` is None on the last page
        """
        ...

    async def get_count(self, pk: str, sk: str) -> int | None:
        """Count of a single record, or None if it does not exist."""
        ...
