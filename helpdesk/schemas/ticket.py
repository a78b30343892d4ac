from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from helpdesk.models.ticket import TicketStatus, TicketPriority  # noqa: F401 - re-exported for API users


class TicketCreate(BaseModel):
    """Schema for creating a ticket. Tenant is taken from the session."""
    subject: str = Field(..., min_length=1)
    ticket_number: Optional[str] = Field(None, max_length=50)
    customer_id: Optional[UUID] = None
    status: str = Field(TicketStatus.OPEN.value, min_length=1, max_length=20)
    priority: TicketPriority = TicketPriority.MEDIUM
    category: Optional[str] = Field(None, max_length=100)
    assigned_to: Optional[UUID] = None
    team_id: Optional[UUID] = None
    gmail_thread_id: Optional[str] = None
    tags: Optional[List[str]] = None
    due_date: Optional[datetime] = None

    @field_validator('ticket_number', mode='before')
    @classmethod
    def convert_empty_number_to_none(cls, v):
        """Empty ticket number means 'generate one'"""
        if v == '':
            return None
        return v


class TicketUpdate(BaseModel):
    """Partial ticket update. Any status may be set from any other."""
    subject: Optional[str] = Field(None, min_length=1)
    status: Optional[str] = Field(None, min_length=1, max_length=20)
    priority: Optional[TicketPriority] = None
    category: Optional[str] = Field(None, max_length=100)
    assigned_to: Optional[UUID] = None
    team_id: Optional[UUID] = None
    tags: Optional[List[str]] = None
    due_date: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None


class CustomerSummary(BaseModel):
    email: str
    name: Optional[str] = None


class TeamSummary(BaseModel):
    id: UUID
    name: str


class TicketOut(BaseModel):
    """Ticket row as shown in the inbox, with display summaries"""
    id: UUID
    tenant_id: UUID
    ticket_number: str
    customer_id: Optional[UUID] = None
    subject: str
    status: str
    priority: str
    category: Optional[str] = None
    assigned_to: Optional[UUID] = None
    team_id: Optional[UUID] = None
    gmail_thread_id: Optional[str] = None
    tags: Optional[List[str]] = None
    due_date: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    customer: Optional[CustomerSummary] = None
    team: Optional[TeamSummary] = None

    class Config:
        from_attributes = True


class APIResponse(BaseModel):
    """Generic API response model for errors"""
    detail: str
