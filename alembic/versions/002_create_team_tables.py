"""Create team_members, teams and team_member_teams tables

Revision ID: 002_create_team_tables
Revises: 001_create_tenants_and_customers
Create Date: 2026-09-01 00:10:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_create_team_tables'
down_revision = '001_create_tenants_and_customers'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'team_members',
        sa.Column('id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), nullable=False, server_default='agent'),  # admin, manager, agent, viewer
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], name='fk_team_members_tenant_id', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'tenant_id', name='uq_team_members_user_tenant'),
        sa.Index('idx_team_members_user_id', 'user_id'),
        sa.Index('idx_team_members_tenant_id', 'tenant_id'),
        sa.Index('idx_team_members_email', 'email'),
    )

    op.create_table(
        'teams',
        sa.Column('id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('manager_team_member_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], name='fk_teams_tenant_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['manager_team_member_id'], ['team_members.id'], name='fk_teams_manager', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.Index('idx_teams_tenant_id', 'tenant_id'),
        sa.Index('idx_teams_manager', 'manager_team_member_id'),
    )

    op.create_table(
        'team_member_teams',
        sa.Column('id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('team_member_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('team_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['team_member_id'], ['team_members.id'], name='fk_tmt_team_member', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], name='fk_tmt_team', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('team_member_id', 'team_id', name='uq_team_member_teams'),
        sa.Index('idx_tmt_team_member_id', 'team_member_id'),
        sa.Index('idx_tmt_team_id', 'team_id'),
    )


def downgrade() -> None:
    op.drop_table('team_member_teams')
    op.drop_table('teams')
    op.drop_table('team_members')
