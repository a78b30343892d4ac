"""
View Filter Resolver

Translates a named inbox view plus an optional explicit status into the
predicates restricting the tickets query:

    mine        assigned_to = user (archived hidden unless status=archived)
    unassigned  assigned_to IS NULL, archived hidden
    team        team_id IN (member teams ∪ managed teams), archived hidden
    archived    status = archived
    all         archived and closed hidden

`mine` without a user and `team` without any team resolve to an empty plan:
the caller returns an empty list without querying tickets.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from helpdesk.models.ticket import TicketStatus
from helpdesk.schemas.inbox import AssignmentView
from helpdesk.services.remote import Predicate, RemoteCollection

logger = logging.getLogger(__name__)


@dataclass
class ViewPlan:
    """Concrete filter for one tickets query"""
    predicates: List[Predicate] = field(default_factory=list)
    empty: bool = False

    @classmethod
    def nothing(cls) -> "ViewPlan":
        return cls(empty=True)


class TeamResolver:
    """Resolves the team ids a user belongs to or manages within a tenant.

    Results are cached per (user_id, tenant_id) for `ttl_seconds`; a ttl of 0
    disables the cache.
    """

    def __init__(self, collection: RemoteCollection, ttl_seconds: float = 0):
        self.collection = collection
        self.ttl_seconds = ttl_seconds
        self._cache: Dict[Tuple[str, str], Tuple[float, List[str]]] = {}

    async def _get_team_member_id(self, user_id: str, tenant_id: str) -> Optional[str]:
        member = await self.collection.select_one(
            "team_members",
            [Predicate.eq("user_id", user_id), Predicate.eq("tenant_id", tenant_id)],
        )
        return member["id"] if member else None

    async def get_member_team_ids(self, user_id: Optional[str], tenant_id: Optional[str]) -> List[str]:
        """Teams the user is a member of"""
        if not user_id or not tenant_id:
            return []
        member_id = await self._get_team_member_id(user_id, tenant_id)
        if not member_id:
            return []
        rows = await self.collection.select("team_member_teams", [Predicate.eq("team_member_id", member_id)])
        return [str(r["team_id"]) for r in rows]

    async def get_managed_team_ids(self, user_id: Optional[str], tenant_id: Optional[str]) -> List[str]:
        """Teams the user manages"""
        if not user_id or not tenant_id:
            return []
        member_id = await self._get_team_member_id(user_id, tenant_id)
        if not member_id:
            return []
        rows = await self.collection.select(
            "teams",
            [Predicate.eq("manager_team_member_id", member_id), Predicate.eq("tenant_id", tenant_id)],
        )
        return [str(r["id"]) for r in rows]

    async def get_team_ids(self, user_id: Optional[str], tenant_id: Optional[str]) -> List[str]:
        """Deduplicated union of member and managed team ids, in first-seen order"""
        if not user_id or not tenant_id:
            return []
        key = (str(user_id), str(tenant_id))
        if self.ttl_seconds > 0:
            cached = self._cache.get(key)
            if cached and time.monotonic() - cached[0] < self.ttl_seconds:
                return list(cached[1])

        member_ids, managed_ids = await asyncio.gather(
            self.get_member_team_ids(user_id, tenant_id),
            self.get_managed_team_ids(user_id, tenant_id),
        )
        team_ids = list(dict.fromkeys(member_ids + managed_ids))

        if self.ttl_seconds > 0:
            self._cache[key] = (time.monotonic(), team_ids)
        return list(team_ids)

    def invalidate(self, user_id: Optional[str] = None, tenant_id: Optional[str] = None):
        """Drop cached team ids (everything when called without arguments)"""
        if user_id is None and tenant_id is None:
            self._cache.clear()
            return
        for key in list(self._cache):
            if (user_id is None or key[0] == str(user_id)) and (tenant_id is None or key[1] == str(tenant_id)):
                del self._cache[key]


class ViewFilterResolver:
    """Builds the tickets query plan for a view within one tenant"""

    def __init__(self, tenant_id: Optional[str], teams: TeamResolver):
        self.tenant_id = tenant_id
        self.teams = teams

    async def resolve(
        self,
        view: AssignmentView,
        user_id: Optional[str],
        status: Optional[str] = None,
    ) -> ViewPlan:
        """Return the plan for `view`; raises RemoteError if team lookup fails"""
        if not self.tenant_id:
            return ViewPlan.nothing()

        predicates = [Predicate.eq("tenant_id", self.tenant_id)]
        archived = TicketStatus.ARCHIVED.value

        if view == AssignmentView.MINE:
            if not user_id:
                logger.debug("'mine' view requested without a user; returning empty result")
                return ViewPlan.nothing()
            predicates.append(Predicate.eq("assigned_to", user_id))
            if status != archived:
                predicates.append(Predicate.neq("status", archived))
        elif view == AssignmentView.UNASSIGNED:
            predicates.append(Predicate.is_null("assigned_to"))
            predicates.append(Predicate.neq("status", archived))
        elif view == AssignmentView.TEAM:
            team_ids = await self.teams.get_team_ids(user_id, self.tenant_id)
            if not team_ids:
                logger.debug(f"User {user_id} has no teams in tenant {self.tenant_id}; returning empty result")
                return ViewPlan.nothing()
            predicates.append(Predicate.in_("team_id", team_ids))
            predicates.append(Predicate.neq("status", archived))
        elif view == AssignmentView.ARCHIVED:
            predicates.append(Predicate.eq("status", archived))
        elif view == AssignmentView.ALL:
            predicates.append(Predicate.neq("status", archived))
            predicates.append(Predicate.neq("status", TicketStatus.CLOSED.value))
        else:
            raise ValueError(f"Unknown assignment view: {view}")

        if status:
            predicates.append(Predicate.eq("status", status))

        return ViewPlan(predicates=predicates)
