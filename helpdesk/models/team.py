from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, Uuid, UniqueConstraint, func
from sqlalchemy.orm import relationship
from helpdesk.db.session import Base
import uuid
import enum


class TeamMemberRole(str, enum.Enum):
    admin = "admin"
    manager = "manager"
    agent = "agent"
    viewer = "viewer"


class TeamMember(Base):
    """An agent account inside one tenant. `user_id` is the auth subject."""
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("user_id", "tenant_id", name="uq_team_members_user_tenant"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    role = Column(String(50), default=TeamMemberRole.agent.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="team_members")
    memberships = relationship("TeamMemberTeam", back_populates="team_member", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<TeamMember(id={self.id}, user_id={self.user_id}, role={self.role})>"


class Team(Base):
    """A group that can own tickets; optionally led by a manager"""
    __tablename__ = "teams"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    manager_team_member_id = Column(
        Uuid(as_uuid=True), ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    members = relationship("TeamMemberTeam", back_populates="team", cascade="all, delete-orphan")
    tickets = relationship("Ticket", back_populates="team")


class TeamMemberTeam(Base):
    """Many-to-many junction between team members and teams"""
    __tablename__ = "team_member_teams"
    __table_args__ = (UniqueConstraint("team_member_id", "team_id", name="uq_team_member_teams"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    team_member_id = Column(
        Uuid(as_uuid=True), ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id = Column(Uuid(as_uuid=True), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    team_member = relationship("TeamMember", back_populates="memberships")
    team = relationship("Team", back_populates="members")
