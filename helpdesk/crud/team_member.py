from sqlalchemy.orm import Session
from helpdesk.models.team import TeamMember
from uuid import UUID
from typing import Optional


def get_team_member_in_tenant(db: Session, user_id: UUID, tenant_id: UUID) -> Optional[TeamMember]:
    """Get the active team member for an auth user within a tenant"""
    return db.query(TeamMember).filter(
        TeamMember.user_id == user_id,
        TeamMember.tenant_id == tenant_id,
        TeamMember.is_active.is_(True)
    ).first()
