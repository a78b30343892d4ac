from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class MessageCreate(BaseModel):
    """Create message request"""
    ticket_id: UUID
    from_email: EmailStr
    from_name: Optional[str] = Field(None, max_length=255)
    content: str = Field(..., min_length=1)
    html_content: Optional[str] = None
    is_customer: bool
    is_internal_note: bool = False
    mentioned_user_ids: Optional[List[UUID]] = None
    created_by: Optional[UUID] = None

    @property
    def is_agent_reply(self) -> bool:
        return not self.is_customer and not self.is_internal_note


class MessageReply(BaseModel):
    """Message body posted to a ticket thread over HTTP; the ticket comes from the path"""
    from_email: EmailStr
    from_name: Optional[str] = Field(None, max_length=255)
    content: str = Field(..., min_length=1)
    html_content: Optional[str] = None
    is_customer: bool = False
    is_internal_note: bool = False
    mentioned_user_ids: Optional[List[UUID]] = None


class MessageOut(BaseModel):
    """Message response schema"""
    id: UUID
    ticket_id: UUID
    from_email: str
    from_name: Optional[str] = None
    content: str
    html_content: Optional[str] = None
    is_customer: bool
    is_internal_note: bool
    mentioned_user_ids: Optional[List[UUID]] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True
