"""Baseline migration - owner settings, customers and appointments

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create scheduling tables."""

    # ==========================================================================
    # Owner calendar configuration
    # ==========================================================================
    op.create_table(
        'owner_calendar_configs',
        sa.Column('owner_id', sa.Uuid(), primary_key=True),
        sa.Column('timezone', sa.String(50), nullable=False, server_default='America/Santiago'),
        sa.Column('default_duration_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('buffer_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('default_price', sa.Integer(), nullable=True),
        sa.Column('workday_start_hour', sa.Integer(), nullable=False, server_default='9'),
        sa.Column('workday_end_hour', sa.Integer(), nullable=False, server_default='18'),
        sa.Column('contact_phone', sa.String(30), nullable=True),
        sa.Column('calendar_sync_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('calendar_id', sa.String(255), nullable=False, server_default='primary'),
        sa.Column('access_token_encrypted', sa.Text(), nullable=True),
        sa.Column('refresh_token_encrypted', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('account_email', sa.String(255), nullable=True),
        sa.Column('needs_reauth', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('default_duration_minutes > 0', name='ck_default_duration_positive'),
        sa.CheckConstraint('buffer_minutes >= 0', name='ck_buffer_non_negative'),
    )

    # ==========================================================================
    # Customers
    # ==========================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_customers_owner', 'customers', ['owner_id'])

    # ==========================================================================
    # Appointments
    # ==========================================================================
    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column(
            'customer_id',
            sa.Uuid(),
            sa.ForeignKey('customers.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('buffer_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('end_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('public_price', sa.Integer(), nullable=True),
        sa.Column('internal_price', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('internal_comment', sa.Text(), nullable=True),
        sa.Column('sync_state', sa.String(20), nullable=False, server_default='unsynced'),
        sa.Column('external_event_id', sa.String(255), nullable=True),
        sa.Column('external_event_link', sa.String(500), nullable=True),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('duration_minutes > 0', name='ck_appointment_duration_positive'),
        sa.CheckConstraint('buffer_minutes >= 0', name='ck_appointment_buffer_non_negative'),
    )
    op.create_index('idx_appointments_owner_start', 'appointments', ['owner_id', 'start_at'])
    op.create_index('idx_appointments_owner_status', 'appointments', ['owner_id', 'status'])
    op.create_index('idx_appointments_owner_sync', 'appointments', ['owner_id', 'sync_state'])
    op.create_index('idx_appointments_customer', 'appointments', ['customer_id'])


def downgrade() -> None:
    """Drop scheduling tables."""
    op.drop_table('appointments')
    op.drop_table('customers')
    op.drop_table('owner_calendar_configs')
