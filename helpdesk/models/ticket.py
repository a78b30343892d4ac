from sqlalchemy import Column, String, Text, ForeignKey, DateTime, Uuid, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from enum import Enum
import uuid
from helpdesk.db.session import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketStatus(str, Enum):
    """Known ticket statuses. The column is a plain string so tenants can add their own."""
    NEW = "new"  # legacy, treated like OPEN
    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ARCHIVED = "archived"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Ticket(Base):
    """Customer ticket owned by exactly one tenant"""
    __tablename__ = "tickets"
    __table_args__ = (UniqueConstraint("tenant_id", "ticket_number", name="uq_tickets_tenant_ticket_number"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    ticket_number = Column(String(50), nullable=False)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=True, index=True)
    team_id = Column(Uuid(as_uuid=True), ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_to = Column(Uuid(as_uuid=True), nullable=True, index=True)

    subject = Column(Text, nullable=False)
    status = Column(String(20), default=TicketStatus.OPEN.value, nullable=False, index=True)
    priority = Column(String(20), default=TicketPriority.MEDIUM.value, nullable=False)
    category = Column(String(100), nullable=True)
    tags = Column(JSON, nullable=True)
    gmail_thread_id = Column(String(255), nullable=True, index=True)

    due_date = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    first_response_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False, index=True)

    # Relationships
    tenant = relationship("Tenant", back_populates="tickets")
    customer = relationship("Customer", back_populates="tickets")
    team = relationship("Team", back_populates="tickets")
    messages = relationship("Message", back_populates="ticket", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Ticket(id={self.id}, number={self.ticket_number}, status={self.status})>"
