"""
Tests for the view filter resolver and team resolution.

Tests cover:
- Predicate shape per view
- Tickets returned per view match the view's rule exactly
- Archived tickets stay out of the active views
- Soft-empty views (no user, no teams, no tenant) issue no ticket query
- Team union and caching
"""
import pytest

from helpdesk.schemas.inbox import AssignmentView, TicketFilters
from helpdesk.services.remote import Predicate
from helpdesk.services.view_filters import TeamResolver, ViewFilterResolver
from tests.fakes import make_ticket, new_id


def _expected(view, rows, user_id, team_ids, status=None):
    """Reference rule for which tickets belong to a view"""
    def belongs(t):
        if view == AssignmentView.MINE:
            ok = t["assigned_to"] == user_id and (t["status"] != "archived" or status == "archived")
        elif view == AssignmentView.UNASSIGNED:
            ok = t["assigned_to"] is None and t["status"] != "archived"
        elif view == AssignmentView.TEAM:
            ok = t["team_id"] in team_ids and t["status"] != "archived"
        elif view == AssignmentView.ARCHIVED:
            ok = t["status"] == "archived"
        else:
            ok = t["status"] not in ("archived", "closed")
        return ok and (status is None or t["status"] == status)
    return {t["id"] for t in rows if belongs(t)}


@pytest.fixture
def world(collection, tenant_id, add_agent, add_team):
    """Mixed ticket set across users, teams and statuses"""
    me = add_agent("Me")
    other = add_agent("Other")
    my_team = add_team("Billing", members=[me])
    other_team = add_team("Technical", members=[other])
    rows = []
    statuses = ["open", "pending", "archived", "closed", "resolved", "new"]
    assignees = [me.user_id, other.user_id, None]
    teams = [my_team, other_team, None]
    number = 0
    for status in statuses:
        for assignee in assignees:
            for team in teams:
                number += 1
                rows.append(make_ticket(tenant_id, number, minutes=number, status=status, assigned_to=assignee, team_id=team))
    # Another tenant's tickets never leak in
    rows.append(make_ticket(new_id(), 999, minutes=999, assigned_to=me.user_id, team_id=my_team))
    collection.add("tickets", *rows)
    return {"me": me, "team_ids": [my_team], "rows": rows[:-1]}


class TestViewPredicates:
    """Tests for the predicate lists produced per view."""

    @pytest.mark.asyncio
    async def test_mine_hides_archived_by_default(self, collection, tenant_id):
        resolver = ViewFilterResolver(tenant_id, TeamResolver(collection))
        plan = await resolver.resolve(AssignmentView.MINE, "u1")
        assert plan.predicates == [
            Predicate.eq("tenant_id", tenant_id),
            Predicate.eq("assigned_to", "u1"),
            Predicate.neq("status", "archived"),
        ]

    @pytest.mark.asyncio
    async def test_mine_with_archived_status_shows_archived(self, collection, tenant_id):
        resolver = ViewFilterResolver(tenant_id, TeamResolver(collection))
        plan = await resolver.resolve(AssignmentView.MINE, "u1", status="archived")
        assert Predicate.neq("status", "archived") not in plan.predicates
        assert Predicate.eq("status", "archived") in plan.predicates

    @pytest.mark.asyncio
    async def test_all_hides_archived_and_closed(self, collection, tenant_id):
        resolver = ViewFilterResolver(tenant_id, TeamResolver(collection))
        plan = await resolver.resolve(AssignmentView.ALL, None)
        assert Predicate.neq("status", "archived") in plan.predicates
        assert Predicate.neq("status", "closed") in plan.predicates

    @pytest.mark.asyncio
    async def test_no_tenant_resolves_to_nothing(self, collection):
        resolver = ViewFilterResolver(None, TeamResolver(collection))
        plan = await resolver.resolve(AssignmentView.ALL, "u1")
        assert plan.empty
        assert collection.calls == []


class TestViewResults:
    """Tickets returned for each view are exactly those satisfying its rule."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("view", list(AssignmentView))
    @pytest.mark.parametrize("status", [None, "open", "archived", "closed"])
    async def test_view_returns_exactly_matching_tickets(self, world, make_store, view, status):
        me = world["me"]
        store = make_store(me.user_id, page_size=500)
        await store.fetch_tickets(TicketFilters(assignment_view=view, status=status))
        await store.wait_for_background()

        got = {t["id"] for t in store.tickets}
        assert got == _expected(view, world["rows"], me.user_id, world["team_ids"], status)
        assert store.error is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("view", [AssignmentView.ALL, AssignmentView.MINE, AssignmentView.UNASSIGNED, AssignmentView.TEAM])
    async def test_archived_never_in_active_views(self, world, make_store, view):
        store = make_store(world["me"].user_id, page_size=500)
        await store.fetch_tickets(TicketFilters(assignment_view=view))
        await store.wait_for_background()
        assert store.tickets
        assert all(t["status"] != "archived" for t in store.tickets)

    @pytest.mark.asyncio
    async def test_mine_without_user_is_empty_without_query(self, world, make_store, collection):
        store = make_store(None)
        collection.calls.clear()
        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.MINE, user_id=None))
        assert store.tickets == []
        assert store.error is None
        assert store.loading is False
        assert collection.count_calls("select", "tickets") == 0

    @pytest.mark.asyncio
    async def test_team_without_teams_is_empty_without_query(self, collection, make_store, add_agent, tenant_id):
        loner = add_agent("Loner")
        collection.add("tickets", make_ticket(tenant_id, 1, team_id=new_id()))
        store = make_store(loner.user_id)
        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.TEAM))
        assert store.tickets == []
        assert store.error is None
        assert collection.count_calls("select", "tickets") == 0


class TestTeamResolution:
    """Tests for member/managed team union and the team cache."""

    @pytest.mark.asyncio
    async def test_team_view_is_union_of_managed_and_member_teams(self, collection, make_store, add_agent, add_team, tenant_id):
        lead = add_agent("Lead", role="manager")
        managed = add_team("X", manager=lead)
        joined = add_team("Y", members=[lead])
        both = add_team("Z", manager=lead, members=[lead])
        elsewhere = add_team("Other")
        collection.add(
            "tickets",
            make_ticket(tenant_id, 1, minutes=1, team_id=managed),
            make_ticket(tenant_id, 2, minutes=2, team_id=joined),
            make_ticket(tenant_id, 3, minutes=3, team_id=both),
            make_ticket(tenant_id, 4, minutes=4, team_id=elsewhere),
        )

        teams = TeamResolver(collection)
        team_ids = await teams.get_team_ids(lead.user_id, tenant_id)
        assert sorted(team_ids) == sorted([managed, joined, both])
        assert len(team_ids) == len(set(team_ids))

        store = make_store(lead.user_id, page_size=10)
        await store.fetch_tickets(TicketFilters(assignment_view=AssignmentView.TEAM))
        assert [t["ticket_number"] for t in store.tickets] == ["TKT-0003", "TKT-0002", "TKT-0001"]

    @pytest.mark.asyncio
    async def test_user_without_member_record_has_no_teams(self, collection, tenant_id):
        teams = TeamResolver(collection)
        assert await teams.get_team_ids(new_id(), tenant_id) == []
        assert await teams.get_team_ids(None, tenant_id) == []

    @pytest.mark.asyncio
    async def test_cache_avoids_repeat_lookups(self, collection, add_agent, add_team, tenant_id):
        agent = add_agent()
        add_team("X", members=[agent])
        teams = TeamResolver(collection, ttl_seconds=60)

        first = await teams.get_team_ids(agent.user_id, tenant_id)
        lookups = collection.count_calls("select", "team_members")
        second = await teams.get_team_ids(agent.user_id, tenant_id)
        assert first == second
        assert collection.count_calls("select", "team_members") == lookups

        teams.invalidate(user_id=agent.user_id)
        await teams.get_team_ids(agent.user_id, tenant_id)
        assert collection.count_calls("select", "team_members") > lookups

    @pytest.mark.asyncio
    async def test_zero_ttl_always_queries(self, collection, add_agent, tenant_id):
        agent = add_agent()
        teams = TeamResolver(collection, ttl_seconds=0)
        await teams.get_team_ids(agent.user_id, tenant_id)
        lookups = collection.count_calls("select", "team_members")
        await teams.get_team_ids(agent.user_id, tenant_id)
        assert collection.count_calls("select", "team_members") == lookups * 2
