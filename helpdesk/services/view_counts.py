"""
Count Aggregator

Computes approximate ticket counts for every inbox view at once, regardless
of which view is displayed, so tab badges stay live while browsing another
tab. The five counts are issued concurrently.
"""

import asyncio
import logging
from typing import Optional

from helpdesk.models.ticket import TicketStatus
from helpdesk.schemas.inbox import ViewCounts
from helpdesk.services.remote import Predicate, RemoteCollection
from helpdesk.services.view_filters import TeamResolver

logger = logging.getLogger(__name__)


class CountAggregator:
    def __init__(self, collection: RemoteCollection, tenant_id: Optional[str], teams: TeamResolver):
        self.collection = collection
        self.tenant_id = tenant_id
        self.teams = teams

    async def _zero(self) -> int:
        return 0

    async def compute_counts(self, user_id: Optional[str]) -> ViewCounts:
        """Return counts for all five views; raises RemoteError on failure"""
        if not self.tenant_id:
            return ViewCounts()

        team_ids = await self.teams.get_team_ids(user_id, self.tenant_id)

        tenant = Predicate.eq("tenant_id", self.tenant_id)
        not_archived = Predicate.neq("status", TicketStatus.ARCHIVED.value)

        all_q = self.collection.count(
            "tickets", [tenant, not_archived, Predicate.neq("status", TicketStatus.CLOSED.value)]
        )
        unassigned_q = self.collection.count("tickets", [tenant, Predicate.is_null("assigned_to"), not_archived])
        mine_q = (
            self.collection.count("tickets", [tenant, Predicate.eq("assigned_to", user_id), not_archived])
            if user_id
            else self._zero()
        )
        archived_q = self.collection.count("tickets", [tenant, Predicate.eq("status", TicketStatus.ARCHIVED.value)])
        team_q = (
            self.collection.count("tickets", [tenant, Predicate.in_("team_id", team_ids), not_archived])
            if team_ids
            else self._zero()
        )

        all_count, unassigned_count, team_count, mine_count, archived_count = await asyncio.gather(
            all_q, unassigned_q, team_q, mine_q, archived_q
        )
        return ViewCounts(
            all=all_count or 0,
            mine=mine_count or 0,
            unassigned=unassigned_count or 0,
            team=team_count or 0,
            archived=archived_count or 0,
        )
