"""
In-memory RemoteCollection used to drive the inbox engine in tests.

Rows live in plain lists per table. Besides the adapter interface it offers:

- `fail_on(op, table)` to make the next calls of an operation raise RemoteError;
- `hold(op, table)` returning an asyncio.Event that blocks the operation
  until set (for interleaving tests);
- `emit(event)` to push a change event to subscribers;
- `calls` recording every operation as (op, table).
"""

import asyncio
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from helpdesk.services.remote import ChangeEvent, OrderBy, Predicate, RemoteCollection, RemoteError, Row, RowRange

SEARCH_PROCEDURE = "search_ticket_ids"
AGENT_REPLY_PROCEDURE = "apply_agent_reply"

EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def make_ticket(tenant_id: str, number: int, minutes: int = 0, **overrides) -> Row:
    """A ticket row updated `minutes` after EPOCH"""
    stamp = (EPOCH + timedelta(minutes=minutes)).isoformat()
    row = {
        "id": new_id(),
        "tenant_id": tenant_id,
        "ticket_number": f"TKT-{number:04d}",
        "customer_id": None,
        "team_id": None,
        "assigned_to": None,
        "subject": f"Ticket {number}",
        "status": "open",
        "priority": "medium",
        "category": None,
        "tags": None,
        "gmail_thread_id": None,
        "due_date": None,
        "resolved_at": None,
        "first_response_at": None,
        "created_at": stamp,
        "updated_at": stamp,
        "customer": None,
        "team": None,
    }
    row.update(overrides)
    return row


def make_message(tenant_id: str, ticket_id: str, minutes: int = 0, **overrides) -> Row:
    row = {
        "id": new_id(),
        "ticket_id": ticket_id,
        "tenant_id": tenant_id,
        "from_email": "customer@example.com",
        "from_name": "Customer",
        "content": "Hello",
        "html_content": None,
        "is_customer": True,
        "is_internal_note": False,
        "mentioned_user_ids": None,
        "created_by": None,
        "created_at": (EPOCH + timedelta(minutes=minutes)).isoformat(),
    }
    row.update(overrides)
    return row


def _sort_key(value: Any):
    return (value is None, "" if value is None else str(value))


class InMemoryCollection(RemoteCollection):
    def __init__(self, procedures: Iterable[str] = ()):
        self.tables: Dict[str, List[Row]] = defaultdict(list)
        self.procedures = frozenset(procedures)
        self.search_results: Dict[str, List[str]] = {}
        self.calls: List[tuple] = []
        self.subscribe_error: Optional[str] = None
        self._failures: Dict[tuple, str] = {}
        self._holds: Dict[tuple, asyncio.Event] = {}
        self._subscribers: List[asyncio.Queue] = []
        self._clock = EPOCH + timedelta(days=1)

    # ── Test controls ───────────────────────────────────────────────

    def add(self, table: str, *rows: Row) -> List[Row]:
        self.tables[table].extend(rows)
        return list(rows)

    def get(self, table: str, row_id: Any) -> Optional[Row]:
        return next((r for r in self.tables[table] if str(r["id"]) == str(row_id)), None)

    def fail_on(self, op: str, table: Optional[str] = None, message: str = "remote failure"):
        self._failures[(op, table)] = message

    def clear_failures(self):
        self._failures.clear()

    def hold(self, op: str, table: Optional[str] = None) -> asyncio.Event:
        gate = asyncio.Event()
        self._holds[(op, table)] = gate
        return gate

    def count_calls(self, op: str, table: Optional[str] = None) -> int:
        return sum(1 for call in self.calls if call[0] == op and (table is None or call[1] == table))

    async def emit(self, event: ChangeEvent):
        for queue in list(self._subscribers):
            await queue.put(event)

    def _now(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    async def _enter(self, op: str, table: str):
        self.calls.append((op, table))
        gate = self._holds.pop((op, table), None) or self._holds.pop((op, None), None)
        if gate is not None:
            await gate.wait()
        message = self._failures.get((op, table)) or self._failures.get((op, None))
        if message is not None:
            raise RemoteError(message)

    def _filter(self, table: str, filters: Sequence[Predicate]) -> List[Row]:
        return [r for r in self.tables[table] if all(p.matches(r) for p in filters)]

    # ── RemoteCollection ────────────────────────────────────────────

    async def select(
        self,
        table: str,
        filters: Sequence[Predicate] = (),
        order: Optional[OrderBy] = None,
        row_range: Optional[RowRange] = None,
    ) -> List[Row]:
        await self._enter("select", table)
        rows = self._filter(table, filters)
        for column, descending in reversed(list(order or ())):
            rows.sort(key=lambda r: _sort_key(r.get(column)), reverse=descending)
        if row_range is not None:
            start, end = row_range
            rows = rows[start:end + 1]
        return [dict(r) for r in rows]

    async def count(self, table: str, filters: Sequence[Predicate] = ()) -> int:
        await self._enter("count", table)
        return len(self._filter(table, filters))

    async def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        await self._enter("rpc", name)
        if name == SEARCH_PROCEDURE:
            return list(self.search_results.get(params["search_term"], []))
        if name == AGENT_REPLY_PROCEDURE and name in self.procedures:
            ticket = next(
                (
                    r for r in self.tables["tickets"]
                    if str(r["id"]) == str(params["ticket_id"]) and str(r["tenant_id"]) == str(params["tenant_id"])
                ),
                None,
            )
            if ticket is None:
                return None
            if params.get("user_id"):
                ticket["assigned_to"] = params["user_id"]
            if ticket["status"] in ("open", "new"):
                ticket["status"] = "pending"
            ticket["updated_at"] = self._now()
            return dict(ticket)
        raise RemoteError(f"Unknown procedure: {name}")

    async def insert(self, table: str, payload: Row) -> Row:
        await self._enter("insert", table)
        row = dict(payload)
        row.setdefault("id", new_id())
        now = self._now()
        row.setdefault("created_at", now)
        if table == "tickets":
            count = sum(1 for r in self.tables[table] if r["tenant_id"] == row["tenant_id"])
            row.setdefault("ticket_number", f"TKT-{count + 1:04d}")
            row.setdefault("status", "open")
            row.setdefault("priority", "medium")
            row.setdefault("assigned_to", None)
            row.setdefault("team_id", None)
            row["updated_at"] = now
        self.tables[table].append(row)
        return dict(row)

    async def update(self, table: str, filters: Sequence[Predicate], patch: Row) -> List[Row]:
        await self._enter("update", table)
        rows = self._filter(table, filters)
        for row in rows:
            row.update(patch)
            if "updated_at" in row:
                row["updated_at"] = self._now()
        return [dict(r) for r in rows]

    async def delete(self, table: str, filters: Sequence[Predicate]) -> int:
        await self._enter("delete", table)
        doomed = self._filter(table, filters)
        ids = {str(r["id"]) for r in doomed}
        self.tables[table] = [r for r in self.tables[table] if str(r["id"]) not in ids]
        if table == "tickets":
            self.tables["messages"] = [m for m in self.tables["messages"] if str(m["ticket_id"]) not in ids]
        return len(doomed)

    def subscribe_changes(self, tables: Sequence[str]):
        if self.subscribe_error:
            raise RemoteError(self.subscribe_error)
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return self._stream(queue, tuple(tables))

    async def _stream(self, queue: asyncio.Queue, tables: tuple):
        try:
            while True:
                event = await queue.get()
                if event.table in tables:
                    yield event
        finally:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
