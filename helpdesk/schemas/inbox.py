from pydantic import BaseModel, field_validator
from typing import Optional, List
from uuid import UUID
from enum import Enum

from helpdesk.schemas.ticket import TicketOut
from helpdesk.schemas.message import MessageOut


class AssignmentView(str, Enum):
    """Named slices of the ticket inbox"""
    ALL = "all"
    MINE = "mine"
    UNASSIGNED = "unassigned"
    TEAM = "team"
    ARCHIVED = "archived"


class TicketFilters(BaseModel):
    """Filters for a ticket fetch.

    Fields that are not supplied inherit the last-applied value; a field
    supplied as None (or a blank search) clears it.
    """
    status: Optional[str] = None
    search: Optional[str] = None
    assignment_view: Optional[AssignmentView] = None
    user_id: Optional[str] = None

    @field_validator('search', mode='before')
    @classmethod
    def blank_search_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator('status', mode='before')
    @classmethod
    def blank_status_to_none(cls, v):
        if v == '':
            return None
        return v


class ViewCounts(BaseModel):
    """Approximate per-view ticket counts for tab badges"""
    all: int = 0
    mine: int = 0
    unassigned: int = 0
    team: int = 0
    archived: int = 0


class SelectionRequest(BaseModel):
    ticket_id: Optional[UUID] = None


class CreatedResponse(BaseModel):
    id: Optional[UUID] = None
    snapshot: "InboxSnapshot"


class InboxSnapshot(BaseModel):
    """Point-in-time view of a ticket store"""
    tickets: List[TicketOut] = []
    selected_ticket: Optional[TicketOut] = None
    messages: List[MessageOut] = []
    loading: bool
    loading_more: bool
    has_more_tickets: bool
    error: Optional[str] = None
    assignment_view: AssignmentView
    view_counts: ViewCounts


CreatedResponse.model_rebuild()
