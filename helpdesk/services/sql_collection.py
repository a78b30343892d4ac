"""
SQLAlchemy Remote Collection

`RemoteCollection` implementation over the application database. Each call
opens its own session and runs in a worker thread so the synchronous ORM
never blocks the event loop.

Writes publish change events (through `publish_change` by default) after
they commit; the change stream itself comes from an optional change feed.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from sqlalchemy import DateTime, Uuid
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from helpdesk.core.config import settings
from helpdesk.core.redis_utils import publish_change
from helpdesk.crud import ticket as crud_ticket
from helpdesk.db.session import SessionLocal
from helpdesk.models.customer import Customer
from helpdesk.models.message import Message
from helpdesk.models.team import Team, TeamMember, TeamMemberTeam
from helpdesk.models.tenant import Tenant  # noqa: F401  (registers the mapper for relationship("Tenant"))
from helpdesk.models.ticket import Ticket
from helpdesk.services.change_feed import RedisChangeFeed
from helpdesk.services.remote import (
    ChangeEvent,
    OrderBy,
    Predicate,
    RemoteCollection,
    RemoteError,
    Row,
    RowRange,
)

logger = logging.getLogger(__name__)

TABLES = {
    "tickets": Ticket,
    "messages": Message,
    "customers": Customer,
    "team_members": TeamMember,
    "teams": Team,
    "team_member_teams": TeamMemberTeam,
}

APPLY_AGENT_REPLY = "apply_agent_reply"

Publisher = Callable[[str, str, Row, Optional[Row]], Any]


def _to_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _jsonable(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SqlAlchemyCollection(RemoteCollection):
    procedures = frozenset({APPLY_AGENT_REPLY})

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        change_feed: Optional[RedisChangeFeed] = None,
        publisher: Optional[Publisher] = publish_change,
    ):
        self.session_factory = session_factory
        self.change_feed = change_feed
        self.publisher = publisher

    # ── Plumbing ────────────────────────────────────────────────────

    async def _run(self, fn: Callable[[Session], Any]) -> Any:
        return await asyncio.to_thread(self._run_sync, fn)

    def _run_sync(self, fn: Callable[[Session], Any]) -> Any:
        db = self.session_factory()
        try:
            return fn(db)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error: {e}")
            raise RemoteError(str(e.__cause__ or e))
        except ValueError as e:
            db.rollback()
            raise RemoteError(f"Invalid value: {e}")
        finally:
            db.close()

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise RemoteError(f"Unknown table: {table}")

    def _column(self, model, name: str):
        column = model.__table__.columns.get(name)
        if column is None:
            raise RemoteError(f"Unknown column {model.__tablename__}.{name}")
        return column

    def _coerce(self, column, value: Any) -> Any:
        if isinstance(column.type, Uuid):
            return _to_uuid(value)
        if isinstance(column.type, DateTime):
            return _to_datetime(value)
        return value

    def _where(self, model, filters: Sequence[Predicate]) -> List[Any]:
        clauses = []
        for predicate in filters:
            column = self._column(model, predicate.column)
            if predicate.op == "eq":
                clauses.append(column == self._coerce(column, predicate.value))
            elif predicate.op == "neq":
                clauses.append(column != self._coerce(column, predicate.value))
            elif predicate.op == "is_null":
                clauses.append(column.is_(None))
            elif predicate.op == "in":
                clauses.append(column.in_([self._coerce(column, v) for v in predicate.value]))
            else:
                raise RemoteError(f"Unsupported filter operator: {predicate.op}")
        return clauses

    def _values(self, model, payload: Row) -> Dict[str, Any]:
        return {name: self._coerce(self._column(model, name), value) for name, value in payload.items()}

    def serialize(self, obj) -> Row:
        row = {column.name: _jsonable(getattr(obj, column.name)) for column in obj.__table__.columns}
        if isinstance(obj, Ticket):
            row["customer"] = {"email": obj.customer.email, "name": obj.customer.name} if obj.customer else None
            row["team"] = {"id": str(obj.team.id), "name": obj.team.name} if obj.team else None
        return row

    def _publish(self, table: str, event: str, row: Row, old: Optional[Row] = None):
        if self.publisher is None:
            return
        try:
            self.publisher(table, event, row, old)
        except Exception as e:
            logger.warning(f"Could not publish {event} on {table}: {e}")

    def _query(self, db: Session, model, filters: Sequence[Predicate]):
        query = db.query(model).filter(*self._where(model, filters))
        if model is Ticket:
            query = query.options(selectinload(Ticket.customer), selectinload(Ticket.team))
        return query

    # ── Reads ───────────────────────────────────────────────────────

    async def select(
        self,
        table: str,
        filters: Sequence[Predicate] = (),
        order: Optional[OrderBy] = None,
        row_range: Optional[RowRange] = None,
    ) -> List[Row]:
        model = self._model(table)

        def run(db: Session) -> List[Row]:
            query = self._query(db, model, filters)
            for name, descending in order or ():
                column = self._column(model, name)
                query = query.order_by(column.desc() if descending else column.asc())
            if row_range is not None:
                start, end = row_range
                query = query.offset(start).limit(max(end - start + 1, 0))
            return [self.serialize(obj) for obj in query.all()]

        return await self._run(run)

    async def count(self, table: str, filters: Sequence[Predicate] = ()) -> int:
        model = self._model(table)
        return await self._run(lambda db: db.query(model).filter(*self._where(model, filters)).count())

    async def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        if name == settings.TICKET_SEARCH_PROCEDURE:
            def search(db: Session) -> List[str]:
                ids = crud_ticket.search_ticket_ids(
                    db, params.get("search_term"), _to_uuid(params.get("filter_tenant_id"))
                )
                return [str(i) for i in ids]

            return await self._run(search)

        if name == APPLY_AGENT_REPLY:
            def apply(db: Session) -> Optional[Row]:
                before = crud_ticket.get_ticket_by_id_in_tenant(
                    db, _to_uuid(params["ticket_id"]), _to_uuid(params["tenant_id"])
                )
                old = self.serialize(before) if before else None
                ticket = crud_ticket.apply_agent_reply(
                    db,
                    _to_uuid(params["ticket_id"]),
                    _to_uuid(params["tenant_id"]),
                    _to_uuid(params.get("user_id")),
                )
                if ticket is None:
                    return None
                row = self.serialize(ticket)
                self._publish("tickets", "UPDATE", row, old)
                return row

            return await self._run(apply)

        raise RemoteError(f"Unknown procedure: {name}")

    # ── Writes ──────────────────────────────────────────────────────

    async def insert(self, table: str, payload: Row) -> Row:
        model = self._model(table)

        def run(db: Session) -> Row:
            values = self._values(model, payload)
            if model is Ticket and not values.get("ticket_number"):
                values["ticket_number"] = crud_ticket.next_ticket_number(db, values.get("tenant_id"))
            obj = model(**values)
            db.add(obj)
            db.commit()
            db.refresh(obj)
            row = self.serialize(obj)
            self._publish(table, "INSERT", row)
            return row

        return await self._run(run)

    async def update(self, table: str, filters: Sequence[Predicate], patch: Row) -> List[Row]:
        model = self._model(table)

        def run(db: Session) -> List[Row]:
            values = self._values(model, patch)
            objs = self._query(db, model, filters).all()
            old_rows = [self.serialize(obj) for obj in objs]
            for obj in objs:
                for name, value in values.items():
                    setattr(obj, name, value)
            db.commit()
            rows = []
            for obj, old in zip(objs, old_rows):
                db.refresh(obj)
                row = self.serialize(obj)
                rows.append(row)
                self._publish(table, "UPDATE", row, old)
            return rows

        return await self._run(run)

    async def delete(self, table: str, filters: Sequence[Predicate]) -> int:
        model = self._model(table)

        def run(db: Session) -> int:
            objs = self._query(db, model, filters).all()
            old_rows = [self.serialize(obj) for obj in objs]
            for obj in objs:
                db.delete(obj)
            db.commit()
            for old in old_rows:
                self._publish(table, "DELETE", {}, old)
            return len(objs)

        return await self._run(run)

    # ── Change stream ───────────────────────────────────────────────

    def subscribe_changes(self, tables: Sequence[str]) -> AsyncIterator[ChangeEvent]:
        if self.change_feed is None:
            raise RemoteError("No change feed configured")
        return self.change_feed.subscribe(tables)
