"""
Remote Collection Adapter

The inbox engine never talks to a database directly. It works against a
"remote collection": tables that can be filtered, ordered, ranged, counted,
searched through a server-side procedure, written to, and watched through a
change-event stream.

Filters are lists of `Predicate`s that are ANDed together:

    [Predicate.eq("tenant_id", tid), Predicate.neq("status", "archived")]

Rows travel as plain dicts with string ids and ISO-8601 timestamps.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Tuple

Row = Dict[str, Any]
# (column, descending)
OrderBy = Sequence[Tuple[str, bool]]
# Inclusive (start, end) row range
RowRange = Tuple[int, int]


class RemoteError(Exception):
    """Raised by adapters when a remote query or write fails"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class Predicate:
    column: str
    op: str  # eq | neq | is_null | in
    value: Any = None

    @classmethod
    def eq(cls, column: str, value: Any) -> "Predicate":
        return cls(column, "eq", value)

    @classmethod
    def neq(cls, column: str, value: Any) -> "Predicate":
        return cls(column, "neq", value)

    @classmethod
    def is_null(cls, column: str) -> "Predicate":
        return cls(column, "is_null")

    @classmethod
    def in_(cls, column: str, values: Iterable[Any]) -> "Predicate":
        return cls(column, "in", tuple(values))

    def matches(self, row: Row) -> bool:
        """Evaluate the predicate against a row (SQL semantics for NULL)"""
        value = row.get(self.column)
        if self.op == "is_null":
            return value is None
        if value is None:
            return False
        if self.op == "eq":
            return str(value) == str(self.value)
        if self.op == "neq":
            return str(value) != str(self.value)
        if self.op == "in":
            return str(value) in {str(v) for v in self.value}
        raise ValueError(f"Unknown predicate operator: {self.op}")


@dataclass(frozen=True)
class ChangeEvent:
    """A single push notification about a changed row"""
    table: str
    event: str  # INSERT | UPDATE | DELETE
    row: Row = field(default_factory=dict)
    old: Row = field(default_factory=dict)

    def get(self, column: str) -> Any:
        """Read a column from the new row, falling back to the old row (deletes)"""
        if column in self.row and self.row[column] is not None:
            return self.row[column]
        return self.old.get(column)


class RemoteCollection(ABC):
    """Interface the inbox engine consumes"""

    # Names of atomic server-side procedures this adapter can run via rpc()
    procedures: frozenset = frozenset()

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Sequence[Predicate] = (),
        order: Optional[OrderBy] = None,
        row_range: Optional[RowRange] = None,
    ) -> List[Row]:
        ...

    @abstractmethod
    async def count(self, table: str, filters: Sequence[Predicate] = ()) -> int:
        ...

    @abstractmethod
    async def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        ...

    @abstractmethod
    async def insert(self, table: str, payload: Row) -> Row:
        ...

    @abstractmethod
    async def update(self, table: str, filters: Sequence[Predicate], patch: Row) -> List[Row]:
        ...

    @abstractmethod
    async def delete(self, table: str, filters: Sequence[Predicate]) -> int:
        ...

    @abstractmethod
    def subscribe_changes(self, tables: Sequence[str]) -> AsyncIterator[ChangeEvent]:
        """Return an async iterator of change events for the given tables.

        May raise RemoteError when the subscription cannot be established.
        """
        ...

    async def select_one(self, table: str, filters: Sequence[Predicate]) -> Optional[Row]:
        rows = await self.select(table, filters, row_range=(0, 0))
        return rows[0] if rows else None
