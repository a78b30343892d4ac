"""
Database seeding script - Creates a demo tenant with agents, teams and tickets
Run this once after your database is set up:
    python seed_db.py
"""

import uuid
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from helpdesk.db.session import SessionLocal, create_tables
from helpdesk.models.tenant import Tenant
from helpdesk.models.customer import Customer
from helpdesk.models.team import Team, TeamMember, TeamMemberRole, TeamMemberTeam
from helpdesk.models.ticket import Ticket, TicketStatus, TicketPriority, utcnow
from helpdesk.models.message import Message
from helpdesk.core.security import create_access_token

DEMO_TICKETS = [
    ("Login not working after password reset", TicketStatus.RESOLVED, TicketPriority.HIGH, "Technical"),
    ("Invoice for Q1 subscription", TicketStatus.OPEN, TicketPriority.MEDIUM, "Billing"),
    ("API rate limit errors", TicketStatus.PENDING, TicketPriority.HIGH, "Technical"),
    ("Request for feature: bulk export", TicketStatus.OPEN, TicketPriority.LOW, "Feature request"),
    ("Account cancellation", TicketStatus.CLOSED, TicketPriority.MEDIUM, "Account"),
    ("Urgent: payment failed for renewal", TicketStatus.OPEN, TicketPriority.URGENT, "Billing"),
]


def seed_database():
    """Create tables and seed a demo tenant"""

    print("Creating database tables...")
    create_tables()
    print("✓ Tables created successfully\n")

    db = SessionLocal()

    try:
        existing = db.query(Tenant).filter(Tenant.slug == "demo").first()
        if existing:
            print("⚠ Demo tenant already exists, skipping...\n")
            return

        tenant = Tenant(name="Demo Support", slug="demo")
        db.add(tenant)
        db.flush()

        admin = TeamMember(
            user_id=uuid.uuid4(), tenant_id=tenant.id, name="Ada Admin",
            email="admin@example.com", role=TeamMemberRole.admin.value,
        )
        manager = TeamMember(
            user_id=uuid.uuid4(), tenant_id=tenant.id, name="Max Manager",
            email="manager@example.com", role=TeamMemberRole.manager.value,
        )
        agent = TeamMember(
            user_id=uuid.uuid4(), tenant_id=tenant.id, name="Alex Agent",
            email="agent@example.com", role=TeamMemberRole.agent.value,
        )
        db.add_all([admin, manager, agent])
        db.flush()

        billing = Team(tenant_id=tenant.id, name="Billing", manager_team_member_id=manager.id)
        technical = Team(tenant_id=tenant.id, name="Technical")
        db.add_all([billing, technical])
        db.flush()
        db.add_all([
            TeamMemberTeam(team_member_id=agent.id, team_id=billing.id),
            TeamMemberTeam(team_member_id=agent.id, team_id=technical.id),
        ])

        now = utcnow()
        for index, (subject, status, priority, category) in enumerate(DEMO_TICKETS, start=1):
            customer = Customer(
                tenant_id=tenant.id, email=f"customer{index}@example.com", name=f"Customer {index}"
            )
            db.add(customer)
            db.flush()
            ticket = Ticket(
                tenant_id=tenant.id,
                ticket_number=f"TKT-{index:04d}",
                customer_id=customer.id,
                team_id=(billing if category == "Billing" else technical).id,
                assigned_to=agent.user_id if index % 2 else None,
                subject=subject,
                status=status.value,
                priority=priority.value,
                category=category,
                created_at=now - timedelta(days=index),
                updated_at=now - timedelta(hours=index),
            )
            db.add(ticket)
            db.flush()
            db.add(Message(
                ticket_id=ticket.id,
                tenant_id=tenant.id,
                from_email=customer.email,
                from_name=customer.name,
                content=f"Hi, {subject.lower()}.",
                is_customer=True,
            ))

        db.commit()

        print("✓ Demo tenant created successfully\n")
        print(f"Tenant id (X-Tenant-ID): {tenant.id}")
        for member in (admin, manager, agent):
            print(f"  {member.role:<8} {member.email:<22} token: {create_access_token(str(member.user_id))}")
        print()

    except IntegrityError:
        db.rollback()
        print("⚠ Demo data already exists\n")
    except Exception as e:
        db.rollback()
        print(f"✗ Error seeding database: {str(e)}\n")
    finally:
        db.close()


if __name__ == "__main__":
    seed_database()
