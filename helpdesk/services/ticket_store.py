"""
Ticket Store

Explicit store for one agent's inbox session (one tenant, one user). It owns
the in-memory ticket list, the open ticket's thread, per-view counts and the
pagination cursor, and is the only writer of that state.

Observers subscribe to slices of the state:

    unsubscribe = store.subscribe(on_change, fields={"tickets", "view_counts"})

and are called with the set of field names that changed.

Every `fetch_tickets` call takes a new request generation. A response is
applied only if its generation is still the latest, so a slow "load more"
cannot overwrite a newer view switch.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from helpdesk.core.config import settings
from helpdesk.schemas.inbox import AssignmentView, InboxSnapshot, TicketFilters, ViewCounts
from helpdesk.schemas.message import MessageCreate
from helpdesk.schemas.ticket import TicketCreate, TicketUpdate
from helpdesk.services.pagination import AppliedFilters, PaginationCursor, TicketPage, TicketPager
from helpdesk.services.remote import Predicate, RemoteCollection, RemoteError, Row
from helpdesk.services.ticket_mutations import TicketMutations
from helpdesk.services.view_counts import CountAggregator
from helpdesk.services.view_filters import TeamResolver, ViewFilterResolver

logger = logging.getLogger(__name__)

STATE_FIELDS = (
    "tickets",
    "selected_ticket",
    "messages",
    "loading",
    "loading_more",
    "has_more_tickets",
    "error",
    "assignment_view",
    "view_counts",
)

Listener = Callable[[Set[str]], None]
Notifier = Callable[[str], Awaitable[Any]]


class TicketStore:
    def __init__(
        self,
        collection: RemoteCollection,
        tenant_id: Optional[str],
        user_id: Optional[str],
        page_size: Optional[int] = None,
        team_cache_ttl: Optional[float] = None,
        notifier: Optional[Notifier] = None,
        default_view: AssignmentView = AssignmentView.MINE,
    ):
        self.collection = collection
        self.tenant_id = str(tenant_id) if tenant_id else None
        self.user_id = str(user_id) if user_id else None
        self.notifier = notifier

        ttl = settings.TEAM_CACHE_TTL_SECONDS if team_cache_ttl is None else team_cache_ttl
        self.teams = TeamResolver(collection, ttl_seconds=ttl)
        self.resolver = ViewFilterResolver(self.tenant_id, self.teams)
        self.pager = TicketPager(collection, self.tenant_id, page_size)
        self.counter = CountAggregator(collection, self.tenant_id, self.teams)
        self.mutations = TicketMutations(self)
        self.cursor = PaginationCursor()

        # Reactive state
        self.tickets: List[Row] = []
        self.selected_ticket: Optional[Row] = None
        self.messages: List[Row] = []
        self.loading = True
        self.loading_more = False
        self.has_more_tickets = False
        self.error: Optional[str] = None
        self.assignment_view = default_view
        self.view_counts = ViewCounts()

        self._listeners: List[tuple] = []
        self._generation = 0
        # Generation whose result the current list and has_more_tickets came from
        self._listed_generation = 0
        self._message_generation = 0
        self._counts_generation = 0
        self._background: Set[asyncio.Task] = set()

    # ── Subscriptions ───────────────────────────────────────────────

    def subscribe(self, listener: Listener, fields: Optional[Iterable[str]] = None) -> Callable[[], None]:
        """Call `listener(changed_fields)` whenever one of `fields` (default: all) changes"""
        watched = frozenset(fields) if fields else frozenset(STATE_FIELDS)
        unknown = watched - set(STATE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown store fields: {sorted(unknown)}")
        entry = (listener, watched)
        self._listeners.append(entry)

        def unsubscribe():
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def _set(self, **changes):
        changed = set()
        for name, value in changes.items():
            if getattr(self, name) != value:
                setattr(self, name, value)
                changed.add(name)
        if not changed:
            return
        for listener, watched in list(self._listeners):
            hits = changed & watched
            if not hits:
                continue
            try:
                listener(hits)
            except Exception:
                logger.exception(f"Store listener {listener!r} failed")

    def snapshot(self) -> InboxSnapshot:
        return InboxSnapshot(
            tickets=self.tickets,
            selected_ticket=self.selected_ticket,
            messages=self.messages,
            loading=self.loading,
            loading_more=self.loading_more,
            has_more_tickets=self.has_more_tickets,
            error=self.error,
            assignment_view=self.assignment_view,
            view_counts=self.view_counts,
        )

    # ── Ticket list ─────────────────────────────────────────────────

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _apply_filters(self, filters: Optional[TicketFilters]) -> AppliedFilters:
        last = self.cursor.filters
        provided = filters.model_fields_set if filters is not None else set()

        view = filters.assignment_view if "assignment_view" in provided and filters.assignment_view else None
        if view is None:
            view = last.assignment_view if last else self.assignment_view

        if "user_id" in provided:
            user_id = filters.user_id
        else:
            user_id = last.user_id if last else self.user_id

        status = filters.status if "status" in provided else (last.status if last else None)
        search = filters.search if "search" in provided else (last.search if last else None)
        return AppliedFilters(assignment_view=view, user_id=user_id, status=status, search=search)

    async def fetch_tickets(
        self,
        filters: Optional[TicketFilters] = None,
        append: bool = False,
        offset: int = 0,
    ):
        """(Re)load the ticket list. Without filters the last-applied filters are re-run."""
        if not self.tenant_id:
            self.cursor = PaginationCursor()
            self._set(
                tickets=[],
                loading=False,
                loading_more=False,
                has_more_tickets=False,
                view_counts=ViewCounts(),
            )
            return

        self._generation += 1
        generation = self._generation

        if append:
            self._set(loading_more=True, error=None)
        else:
            self.cursor.reset_search()
            self._set(loading=True, error=None)

        applied = self._apply_filters(filters)
        self.cursor.filters = applied
        self._set(assignment_view=applied.assignment_view)

        try:
            plan = await self.resolver.resolve(applied.assignment_view, applied.user_id, applied.status)
            if plan.empty:
                page = TicketPage()
            else:
                page = await self.pager.fetch_page(plan, self.cursor, applied.search, append, offset)
        except RemoteError as e:
            if self._is_current(generation):
                logger.warning(f"Ticket fetch failed for view {applied.assignment_view.value}: {e.message}")
                changes: Dict[str, Any] = dict(
                    error=e.message, has_more_tickets=False, loading=False, loading_more=False
                )
                if not append:
                    changes["tickets"] = []
                self._set(**changes)
            self._schedule_counts(applied.user_id)
            return

        if not self._is_current(generation):
            logger.debug(f"Discarding stale ticket page (generation {generation}, latest {self._generation})")
            return

        if applied.search:
            self.cursor.search_ids = page.search_ids
            self.cursor.search_offset = page.search_offset

        tickets = self._merge(page.rows) if append else list(page.rows)
        self._listed_generation = generation
        self._set(tickets=tickets, has_more_tickets=page.has_more, loading=False, loading_more=False)
        self._schedule_counts(applied.user_id)

    def _merge(self, rows: List[Row]) -> List[Row]:
        seen = {str(t["id"]) for t in self.tickets}
        return self.tickets + [r for r in rows if str(r["id"]) not in seen]

    async def load_more_tickets(self):
        """Append the next page for the last-applied filters"""
        last = self.cursor.filters
        if not last or self.loading_more or not self.has_more_tickets or not self.tenant_id:
            return
        # A replacing fetch is in flight: the list on screen no longer matches the cursor
        if self.loading or self._listed_generation != self._generation:
            logger.debug("Ignoring load more while the ticket list is being replaced")
            return
        await self.fetch_tickets(
            TicketFilters(
                status=last.status,
                search=last.search,
                assignment_view=last.assignment_view,
                user_id=last.user_id,
            ),
            append=True,
            offset=self.cursor.next_offset(len(self.tickets)),
        )

    async def set_assignment_view(self, view: AssignmentView):
        self._set(assignment_view=view)
        await self.fetch_tickets(TicketFilters(assignment_view=view))

    # ── Selection & thread ──────────────────────────────────────────

    def find_ticket(self, ticket_id: Any) -> Optional[Row]:
        return next((t for t in self.tickets if str(t["id"]) == str(ticket_id)), None)

    async def select_ticket(self, ticket_id: Optional[Any]):
        """Open a ticket (loading its thread) or close the open one with None"""
        if ticket_id is None:
            self._message_generation += 1
            self._set(selected_ticket=None, messages=[])
            return

        ticket = self.find_ticket(ticket_id)
        if ticket is None:
            try:
                ticket = await self.collection.select_one(
                    "tickets",
                    [Predicate.eq("id", str(ticket_id)), Predicate.eq("tenant_id", self.tenant_id)],
                )
            except RemoteError as e:
                self._set(error=e.message)
                return
        if ticket is None:
            self._message_generation += 1
            self._set(selected_ticket=None, messages=[], error="Ticket not found")
            return

        self._set(selected_ticket=ticket)
        await self.fetch_messages(str(ticket["id"]))

    async def fetch_messages(self, ticket_id: Any):
        """Load the thread for a ticket, oldest first"""
        self._message_generation += 1
        generation = self._message_generation
        try:
            rows = await self.collection.select(
                "messages",
                [Predicate.eq("ticket_id", str(ticket_id))],
                order=(("created_at", False),),
            )
        except RemoteError as e:
            if generation == self._message_generation:
                self._set(error=e.message, messages=[])
            return

        if generation != self._message_generation:
            return
        # Threads are only shown for the open ticket
        if self.selected_ticket_id() != str(ticket_id):
            return
        self._set(messages=rows)

    def selected_ticket_id(self) -> Optional[str]:
        return str(self.selected_ticket["id"]) if self.selected_ticket else None

    def merge_selected(self, changes: Row):
        if self.selected_ticket:
            self._set(selected_ticket={**self.selected_ticket, **changes})

    def report_error(self, message: str):
        self._set(error=message)

    # ── Counts ──────────────────────────────────────────────────────

    def _schedule_counts(self, user_id: Optional[str]):
        self.run_in_background(self.refresh_counts(user_id))

    def run_in_background(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def refresh_counts(self, user_id: Optional[str]):
        self._counts_generation += 1
        generation = self._counts_generation
        try:
            counts = await self.counter.compute_counts(user_id)
        except RemoteError as e:
            logger.warning(f"View counts refresh failed for tenant {self.tenant_id}: {e.message}")
            return
        if generation == self._counts_generation:
            self._set(view_counts=counts)

    async def wait_for_background(self):
        """Wait until scheduled count refreshes and notifications have finished"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self):
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)
        self._listeners.clear()

    # ── Mutations ───────────────────────────────────────────────────

    async def create_ticket(self, data: TicketCreate) -> Optional[Row]:
        return await self.mutations.create_ticket(data)

    async def update_ticket(self, ticket_id: Any, patch: TicketUpdate) -> bool:
        return await self.mutations.update_ticket(ticket_id, patch)

    async def delete_ticket(self, ticket_id: Any) -> bool:
        return await self.mutations.delete_ticket(ticket_id)

    async def add_message(self, data: MessageCreate) -> Optional[str]:
        return await self.mutations.add_message(data)
