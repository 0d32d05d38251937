"""In-memory metric store.

Implements MetricStoreProtocol with plain dictionaries. Used for local runs
and tests; it has no expiry sweeper (``ttl`` is stored, never enforced).
"""

from typing import Any

from .exceptions import ConditionFailedError
from .models import AddToCounter, CounterPage, CounterRecord, CreateIfAbsent, TransactOp

DEFAULT_PAGE_SIZE = 100


class InMemoryRepository:
    """Dictionary-backed store with all-or-nothing transactions."""

    def __init__(self, table_name: str = "in-memory", page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self._table_name = table_name
        self.page_size = page_size
        self._items: dict[tuple[str, str], dict[str, Any]] = {}

    @property
    def table_name(self) -> str:
        return self._table_name

    async def close(self) -> None:
        pass

    async def transact_write(self, ops: list[TransactOp]) -> None:
        # Check every condition before touching anything.
        for index, op in enumerate(ops):
            if isinstance(op, CreateIfAbsent) and (op.pk, op.sk) in self._items:
                raise ConditionFailedError(index)

        for op in ops:
            if isinstance(op, AddToCounter):
                item = self._items.setdefault((op.pk, op.sk), {"count": 0})
                item["count"] += op.delta
                item["ttl"] = op.ttl
            elif isinstance(op, CreateIfAbsent):
                self._items[(op.pk, op.sk)] = {"ttl": op.ttl}
            else:
                raise TypeError(f"Unsupported transaction operation: {op!r}")

    async def range_read(
        self,
        pk: str,
        sk_from: str,
        sk_to: str,
        start_key: Any = None,
        page_size: int | None = None,
    ) -> CounterPage:
        limit = page_size or self.page_size
        keys = sorted(
            sk
            for item_pk, sk in self._items
            if item_pk == pk and sk_from <= sk <= sk_to and (start_key is None or sk > start_key)
        )
        page = keys[:limit]
        items = [
            CounterRecord(
                pk=pk,
                sk=sk,
                count=self._items[(pk, sk)].get("count", 0),
                ttl=self._items[(pk, sk)].get("ttl"),
            )
            for sk in page
        ]
        next_key = page[-1] if len(keys) > limit else None
        return CounterPage(items=items, next_key=next_key)

    async def get_count(self, pk: str, sk: str) -> int | None:
        item = self._items.get((pk, sk))
        if item is None:
            return None
        return item.get("count")

    def contains(self, pk: str, sk: str) -> bool:
        """True if any record (counter or marker) exists at the key."""
        return (pk, sk) in self._items
