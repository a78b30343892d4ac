"""
Test configuration and fixtures.

Provides:
- Settings pointed at SQLite before the application is imported
- In-memory remote collection and ticket store factories
- Seed helpers for tenants, team members and teams
"""
import os

# Configure the application before anything imports helpdesk.core.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["NOTIFY_NEW_TICKET_URL"] = ""
os.environ["TEAM_CACHE_TTL_SECONDS"] = "0"

from dataclasses import dataclass
from typing import Callable

import pytest

from helpdesk.schemas.inbox import AssignmentView
from helpdesk.services.ticket_store import TicketStore
from tests.fakes import InMemoryCollection, new_id


@dataclass
class Agent:
    """A user with a team member record in the test tenant"""
    user_id: str
    member_id: str


@pytest.fixture
def tenant_id() -> str:
    return new_id()


@pytest.fixture
def collection() -> InMemoryCollection:
    return InMemoryCollection()


@pytest.fixture
def add_agent(collection: InMemoryCollection, tenant_id: str) -> Callable[..., Agent]:
    def _add(name: str = "Agent", role: str = "agent") -> Agent:
        agent = Agent(user_id=new_id(), member_id=new_id())
        collection.add("team_members", {
            "id": agent.member_id,
            "user_id": agent.user_id,
            "tenant_id": tenant_id,
            "name": name,
            "email": f"{name.lower().replace(' ', '.')}@example.com",
            "role": role,
            "is_active": True,
        })
        return agent
    return _add


@pytest.fixture
def add_team(collection: InMemoryCollection, tenant_id: str) -> Callable[..., str]:
    def _add(name: str, manager: Agent = None, members=()) -> str:
        team_id = new_id()
        collection.add("teams", {
            "id": team_id,
            "tenant_id": tenant_id,
            "name": name,
            "manager_team_member_id": manager.member_id if manager else None,
        })
        for member in members:
            collection.add("team_member_teams", {
                "id": new_id(),
                "team_member_id": member.member_id,
                "team_id": team_id,
            })
        return team_id
    return _add


@pytest.fixture
def make_store(collection: InMemoryCollection, tenant_id: str) -> Callable[..., TicketStore]:
    def _make(user_id=None, **kwargs) -> TicketStore:
        kwargs.setdefault("page_size", 3)
        kwargs.setdefault("team_cache_ttl", 0)
        kwargs.setdefault("default_view", AssignmentView.MINE)
        return TicketStore(collection, kwargs.pop("tenant_id", tenant_id), user_id, **kwargs)
    return _make
