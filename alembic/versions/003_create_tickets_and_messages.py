"""Create tickets and messages tables

Revision ID: 003_create_tickets_and_messages
Revises: 002_create_team_tables
Create Date: 2026-09-01 00:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '003_create_tickets_and_messages'
down_revision = '002_create_team_tables'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'tickets',
        sa.Column('id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('ticket_number', sa.String(50), nullable=False),
        sa.Column('customer_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('team_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('assigned_to', sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('subject', sa.Text, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='open'),  # new, open, pending, resolved, closed, archived
        sa.Column('priority', sa.String(20), nullable=False, server_default='medium'),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('tags', sa.JSON, nullable=True),
        sa.Column('gmail_thread_id', sa.String(255), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_response_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], name='fk_tickets_tenant_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name='fk_tickets_customer_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], name='fk_tickets_team_id', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'ticket_number', name='uq_tickets_tenant_ticket_number'),
        sa.Index('idx_tickets_tenant_id', 'tenant_id'),
        sa.Index('idx_tickets_customer_id', 'customer_id'),
        sa.Index('idx_tickets_team_id', 'team_id'),
        sa.Index('idx_tickets_assigned_to', 'assigned_to'),
        sa.Index('idx_tickets_status', 'status'),
        sa.Index('idx_tickets_gmail_thread_id', 'gmail_thread_id'),
        # Inbox ordering
        sa.Index('idx_tickets_tenant_updated_at', 'tenant_id', 'updated_at'),
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('ticket_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('from_email', sa.String(255), nullable=False),
        sa.Column('from_name', sa.String(255), nullable=True),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('html_content', sa.Text, nullable=True),
        sa.Column('is_customer', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_internal_note', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('mentioned_user_ids', sa.JSON, nullable=True),
        sa.Column('created_by', sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], name='fk_messages_ticket_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], name='fk_messages_tenant_id', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.Index('idx_messages_ticket_id', 'ticket_id'),
        sa.Index('idx_messages_tenant_id', 'tenant_id'),
        sa.Index('idx_messages_created_at', 'created_at'),
    )


def downgrade() -> None:
    op.drop_table('messages')
    op.drop_table('tickets')
