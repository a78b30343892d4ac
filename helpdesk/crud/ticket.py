from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from helpdesk.models.ticket import Ticket, TicketStatus
from helpdesk.models.customer import Customer
from helpdesk.models.team import TeamMember
from helpdesk.models.message import Message
from uuid import UUID
from typing import Optional, List
import re

TICKET_NUMBER_PREFIX = "TKT-"
_TICKET_NUMBER_RE = re.compile(r"^TKT-(\d+)$")

# Statuses an agent reply moves to pending
AUTO_PENDING_FROM = (TicketStatus.OPEN.value, TicketStatus.NEW.value)


def next_ticket_number(db: Session, tenant_id: UUID) -> str:
    """Next sequential ticket number in a tenant (TKT-0001, TKT-0002, ...)"""
    numbers = db.query(Ticket.ticket_number).filter(
        Ticket.tenant_id == tenant_id,
        Ticket.ticket_number.like(f"{TICKET_NUMBER_PREFIX}%"),
    ).all()
    highest = 0
    for (number,) in numbers:
        match = _TICKET_NUMBER_RE.match(number or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{TICKET_NUMBER_PREFIX}{highest + 1:04d}"


def get_ticket_by_id_in_tenant(db: Session, ticket_id: UUID, tenant_id: UUID) -> Optional[Ticket]:
    """Get a ticket by ID within a tenant"""
    return db.query(Ticket).filter(
        Ticket.id == ticket_id,
        Ticket.tenant_id == tenant_id
    ).first()


def search_ticket_ids(db: Session, search_term: Optional[str], tenant_id: Optional[UUID] = None) -> List[UUID]:
    """
    Ids of tickets matching a term, most recently updated first.

    Matches case-insensitively on subject, ticket number, customer name or
    email, assignee name or email, and the content of any message.
    A blank term matches nothing.
    """
    term = (search_term or "").strip()
    if not term:
        return []
    pattern = f"%{term}%"

    customer_ids = select(Customer.id).where(or_(Customer.name.ilike(pattern), Customer.email.ilike(pattern)))
    assignee_ids = select(TeamMember.user_id).where(
        TeamMember.is_active.is_(True),
        or_(TeamMember.name.ilike(pattern), TeamMember.email.ilike(pattern)),
    )
    message_ticket_ids = select(Message.ticket_id).where(Message.content.ilike(pattern))
    if tenant_id is not None:
        assignee_ids = assignee_ids.where(TeamMember.tenant_id == tenant_id)

    query = db.query(Ticket.id).filter(
        or_(
            Ticket.subject.ilike(pattern),
            Ticket.ticket_number.ilike(pattern),
            Ticket.customer_id.in_(customer_ids),
            Ticket.assigned_to.in_(assignee_ids),
            Ticket.id.in_(message_ticket_ids),
        )
    )
    if tenant_id is not None:
        query = query.filter(Ticket.tenant_id == tenant_id)

    rows = query.order_by(Ticket.updated_at.desc(), Ticket.id.desc()).all()
    return [row[0] for row in rows]


def apply_agent_reply(db: Session, ticket_id: UUID, tenant_id: UUID, user_id: Optional[UUID]) -> Optional[Ticket]:
    """
    Assign a ticket to the replying agent and move it from open/new to
    pending, in one transaction. Returns None if the ticket does not exist.
    """
    ticket = db.query(Ticket).filter(
        Ticket.id == ticket_id,
        Ticket.tenant_id == tenant_id
    ).with_for_update().first()
    if not ticket:
        return None

    if user_id is not None:
        ticket.assigned_to = user_id
    if ticket.status in AUTO_PENDING_FROM:
        ticket.status = TicketStatus.PENDING.value

    db.commit()
    db.refresh(ticket)
    return ticket
