"""
Tests for ticket list pagination and ranked search windows.

Tests cover:
- Load more walks the whole set without duplicates or omissions
- has_more turns false exactly when the set is complete
- Ties on updated_at do not reorder across pages
- Repeated fetches are idempotent
- Search ids are ranked once and paged from the cache
"""
import random

import pytest

from helpdesk.schemas.inbox import AssignmentView, TicketFilters
from tests.fakes import make_ticket


def _seed(collection, tenant_id, count, **overrides):
    rows = [make_ticket(tenant_id, n, minutes=n, **overrides) for n in range(1, count + 1)]
    collection.add("tickets", *rows)
    return rows


async def _load_all(store, filters):
    await store.fetch_tickets(filters)
    pages = [store.has_more_tickets]
    while store.has_more_tickets:
        await store.load_more_tickets()
        pages.append(store.has_more_tickets)
    return pages


class TestLoadMore:
    """Tests for offset pagination of plain listings."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 1, 2, 3, 4, 6, 7, 10])
    async def test_load_more_returns_every_ticket_once_in_order(self, collection, tenant_id, make_store, count):
        rows = _seed(collection, tenant_id, count)
        store = make_store(None)

        pages = await _load_all(store, TicketFilters(assignment_view=AssignmentView.ALL))

        expected = [r["id"] for r in sorted(rows, key=lambda r: r["updated_at"], reverse=True)]
        assert [t["id"] for t in store.tickets] == expected
        # has_more is true on every page but the one that completes the set
        full_pages = max(1, -(-count // 3))
        assert pages == [True] * (full_pages - 1) + [False]

    @pytest.mark.asyncio
    async def test_equal_updated_at_does_not_duplicate_across_pages(self, collection, tenant_id, make_store):
        stamp = "2026-02-01T00:00:00+00:00"
        rows = [make_ticket(tenant_id, n, updated_at=stamp) for n in range(1, 9)]
        collection.add("tickets", *rows)
        store = make_store(None)

        await _load_all(store, TicketFilters(assignment_view=AssignmentView.ALL))

        ids = [t["id"] for t in store.tickets]
        assert len(ids) == len(set(ids)) == 8
        assert ids == sorted(ids, reverse=True)

    @pytest.mark.asyncio
    async def test_rows_shifted_between_pages_are_not_duplicated(self, collection, tenant_id, make_store):
        rows = _seed(collection, tenant_id, 6)
        store = make_store(None)
        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL))

        # A new ticket pushes the first page's last row onto the second page
        collection.add("tickets", make_ticket(tenant_id, 7, minutes=100))
        while store.has_more_tickets:
            await store.load_more_tickets()

        ids = [t["id"] for t in store.tickets]
        assert len(ids) == len(set(ids))
        assert {r["id"] for r in rows} - set(ids) == set()

    @pytest.mark.asyncio
    async def test_load_more_is_noop_without_more(self, collection, tenant_id, make_store):
        _seed(collection, tenant_id, 2)
        store = make_store(None)
        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL))
        selects = collection.count_calls("select", "tickets")

        await store.load_more_tickets()
        assert collection.count_calls("select", "tickets") == selects

    @pytest.mark.asyncio
    async def test_fetch_is_idempotent(self, collection, tenant_id, make_store):
        _seed(collection, tenant_id, 5)
        store = make_store(None)
        filters = TicketFilters(assignment_view=AssignmentView.ALL, status="open")

        await store.fetch_tickets(filters)
        first = list(store.tickets)
        await store.fetch_tickets(filters)
        assert store.tickets == first

    @pytest.mark.asyncio
    async def test_refetch_without_filters_reuses_last_applied(self, collection, tenant_id, make_store):
        _seed(collection, tenant_id, 2)
        _seed(collection, tenant_id, 2, status="pending")
        store = make_store(None)

        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL, status="pending"))
        await store.fetch_tickets()
        assert store.assignment_view == AssignmentView.ALL
        assert {t["status"] for t in store.tickets} == {"pending"}

        # An explicit empty status clears the filter
        await store.fetch_tickets(TicketFilters(status=""))
        assert len(store.tickets) == 3
        assert store.has_more_tickets


class TestSearchWindow:
    """Tests for ranked-id search and cached windows."""

    @pytest.mark.asyncio
    async def test_paged_search_matches_unpaged_ranking(self, collection, tenant_id, make_store):
        rows = _seed(collection, tenant_id, 14)
        ranked = [r["id"] for r in rows[:12]]
        random.Random(7).shuffle(ranked)
        collection.search_results["refund"] = ranked

        paged = make_store(None, page_size=3)
        await paged.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL, search="refund"))
        for _ in range(3):
            await paged.load_more_tickets()

        unpaged = make_store(None, page_size=12)
        await unpaged.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL, search="refund"))

        assert [t["id"] for t in paged.tickets] == ranked
        assert [t["id"] for t in unpaged.tickets] == ranked
        assert paged.has_more_tickets is False
        # Ranked once per store; load more pages from the cache
        assert collection.count_calls("rpc", "search_ticket_ids") == 2

    @pytest.mark.asyncio
    async def test_search_has_more_until_window_reaches_end(self, collection, tenant_id, make_store):
        rows = _seed(collection, tenant_id, 5)
        collection.search_results["x"] = [r["id"] for r in rows]
        store = make_store(None)

        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL, search="x"))
        assert len(store.tickets) == 3
        assert store.has_more_tickets is True
        await store.load_more_tickets()
        assert len(store.tickets) == 5
        assert store.has_more_tickets is False

    @pytest.mark.asyncio
    async def test_search_results_still_respect_view(self, collection, tenant_id, make_store):
        archived = _seed(collection, tenant_id, 2, status="archived")
        active = _seed(collection, tenant_id, 2)
        collection.search_results["mixed"] = [archived[0]["id"], active[0]["id"], archived[1]["id"], active[1]["id"]]
        store = make_store(None, page_size=10)

        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL, search="mixed"))
        assert [t["id"] for t in store.tickets] == [active[0]["id"], active[1]["id"]]

    @pytest.mark.asyncio
    async def test_new_search_term_reranks(self, collection, tenant_id, make_store):
        rows = _seed(collection, tenant_id, 4)
        collection.search_results["a"] = [rows[0]["id"]]
        collection.search_results["b"] = [rows[1]["id"], rows[2]["id"]]
        store = make_store(None)

        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL, search="a"))
        await store.fetch_tickets(TicketFilters(search="b"))
        assert [t["id"] for t in store.tickets] == [rows[1]["id"], rows[2]["id"]]
        assert collection.count_calls("rpc", "search_ticket_ids") == 2

        # Clearing the search returns to the plain listing
        await store.fetch_tickets(TicketFilters(search=None))
        assert store.cursor.search_ids is None
        assert len(store.tickets) == 3

    @pytest.mark.asyncio
    async def test_search_without_matches_is_empty(self, collection, tenant_id, make_store):
        _seed(collection, tenant_id, 3)
        store = make_store(None)
        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL, search="nothing"))
        assert store.tickets == []
        assert store.has_more_tickets is False
        assert store.error is None

    @pytest.mark.asyncio
    async def test_window_filtered_out_by_view_is_skipped(self, collection, tenant_id, make_store):
        archived = _seed(collection, tenant_id, 3, status="archived")
        active = _seed(collection, tenant_id, 2)
        collection.search_results["mixed"] = [r["id"] for r in archived + active]
        store = make_store(None)

        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL, search="mixed"))
        assert [t["id"] for t in store.tickets] == [active[0]["id"], active[1]["id"]]
        assert store.has_more_tickets is False

    @pytest.mark.asyncio
    async def test_load_more_never_returns_an_empty_page_with_more(self, collection, tenant_id, make_store):
        active = _seed(collection, tenant_id, 4)
        archived = _seed(collection, tenant_id, 3, status="archived")
        ranked = [r["id"] for r in active[:3]] + [r["id"] for r in archived] + [active[3]["id"]]
        collection.search_results["mixed"] = ranked
        store = make_store(None)

        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.ALL, search="mixed"))
        assert len(store.tickets) == 3
        assert store.has_more_tickets is True

        await store.load_more_tickets()
        assert [t["id"] for t in store.tickets] == [r["id"] for r in active]
        assert store.has_more_tickets is False
