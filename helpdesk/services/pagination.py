"""
Pagination Cursor Manager

Fetches one page of tickets for a resolved view plan.

Plain listing pages with a row range over `updated_at DESC, id DESC` and
reads one row past the page to know whether more exist. Search runs the
ranked-ID procedure once per new term, caches the ordered id list on the
cursor, and pages by slicing that list, so "load more" never re-ranks.
A window whose ids the view filters out entirely is skipped, so a search
page is only empty when the cached list is exhausted. The cached list is a
snapshot: tickets created mid-search show up only after a new search.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from helpdesk.core.config import settings
from helpdesk.schemas.inbox import AssignmentView
from helpdesk.services.remote import Predicate, RemoteCollection, Row
from helpdesk.services.view_filters import ViewPlan

logger = logging.getLogger(__name__)

TICKET_ORDER = (("updated_at", True), ("id", True))


@dataclass
class AppliedFilters:
    """Last-applied filter state"""
    assignment_view: AssignmentView
    user_id: Optional[str] = None
    status: Optional[str] = None
    search: Optional[str] = None


@dataclass
class PaginationCursor:
    filters: Optional[AppliedFilters] = None
    # Ranked ids for the active search; None outside a search session
    search_ids: Optional[List[str]] = None
    # Position of the next search window in search_ids
    search_offset: int = 0

    def reset_search(self):
        self.search_ids = None
        self.search_offset = 0

    def next_offset(self, loaded: int) -> int:
        if self.filters and self.filters.search:
            return self.search_offset
        return loaded


@dataclass
class TicketPage:
    rows: List[Row] = field(default_factory=list)
    has_more: bool = False
    # Search only: the id list the page was cut from and where the next window starts
    search_ids: Optional[List[str]] = None
    search_offset: int = 0


class TicketPager:
    def __init__(self, collection: RemoteCollection, tenant_id: Optional[str], page_size: Optional[int] = None):
        self.collection = collection
        self.tenant_id = tenant_id
        self.page_size = page_size or settings.TICKETS_PAGE_SIZE

    async def fetch_page(
        self,
        plan: ViewPlan,
        cursor: PaginationCursor,
        search: Optional[str] = None,
        append: bool = False,
        offset: int = 0,
    ) -> TicketPage:
        """Fetch one page; raises RemoteError on query failure"""
        if search:
            return await self._fetch_search_page(plan, cursor, search, append, offset)

        # One row past the page tells whether another page exists
        rows = await self.collection.select(
            "tickets",
            plan.predicates,
            order=TICKET_ORDER,
            row_range=(offset, offset + self.page_size),
        )
        return TicketPage(rows=rows[:self.page_size], has_more=len(rows) > self.page_size)

    async def _fetch_search_page(
        self,
        plan: ViewPlan,
        cursor: PaginationCursor,
        search: str,
        append: bool,
        offset: int,
    ) -> TicketPage:
        if append and cursor.search_ids:
            ids = cursor.search_ids
        else:
            result = await self.collection.rpc(
                settings.TICKET_SEARCH_PROCEDURE,
                {"search_term": search, "filter_tenant_id": self.tenant_id},
            )
            ids = [str(i) for i in (result or [])]
            offset = 0
            logger.debug(f"Search '{search}' matched {len(ids)} ticket(s)")

        page_ids = ids[offset:offset + self.page_size]
        window_end = offset + len(page_ids)
        rows: List[Row] = []
        # A window the view filters out entirely moves on to the next one
        while page_ids:
            rows = await self.collection.select(
                "tickets",
                list(plan.predicates) + [Predicate.in_("id", page_ids)],
                order=TICKET_ORDER,
            )
            if rows or window_end >= len(ids):
                break
            page_ids = ids[window_end:window_end + self.page_size]
            window_end += len(page_ids)

        rank = {ticket_id: position for position, ticket_id in enumerate(page_ids)}
        rows.sort(key=lambda r: rank.get(str(r["id"]), len(rank)))
        return TicketPage(
            rows=rows,
            has_more=window_end < len(ids),
            search_ids=ids or None,
            search_offset=window_end,
        )
