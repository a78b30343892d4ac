from sqlalchemy import Column, String, Text, Boolean, ForeignKey, DateTime, Uuid, JSON
from sqlalchemy.orm import relationship
import uuid
from helpdesk.db.session import Base
from helpdesk.models.ticket import utcnow


class Message(Base):
    """A message on a ticket thread.

    `is_customer` and `is_internal_note` partition the thread into
    customer-visible, agent-visible and internal-only messages.
    """
    __tablename__ = "messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    ticket_id = Column(Uuid(as_uuid=True), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    from_email = Column(String(255), nullable=False)
    from_name = Column(String(255), nullable=True)
    content = Column(Text, nullable=False)
    html_content = Column(Text, nullable=True)
    is_customer = Column(Boolean, default=False, nullable=False)
    is_internal_note = Column(Boolean, default=False, nullable=False)
    mentioned_user_ids = Column(JSON, nullable=True)
    created_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    # Relationships
    ticket = relationship("Ticket", back_populates="messages")

    def __repr__(self):
        return f"<Message(id={self.id}, ticket_id={self.ticket_id}, customer={self.is_customer})>"
