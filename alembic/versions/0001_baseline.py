"""Baseline migration - customers, tickets, interactions, handoffs, outbox, AI artifacts

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-16

Portable DDL (SQLite for local dev, PostgreSQL in production).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]
    if with_updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def upgrade() -> None:
    """Create all FlowOps tables."""

    # ==========================================================================
    # Customers
    # ==========================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.String(128), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('plan', sa.String(20), nullable=False),
        *_timestamps(),
    )

    # ==========================================================================
    # Tickets
    # ==========================================================================
    op.create_table(
        'tickets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.String(128), sa.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('request_key', sa.String(255), nullable=False),
        sa.Column('subject', sa.String(255), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('priority', sa.String(10), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('customer_id', 'request_key', name='uq_ticket_request'),
    )
    op.create_index('idx_tickets_customer', 'tickets', ['customer_id', 'created_at'])

    # ==========================================================================
    # Interactions (idempotency anchor)
    # ==========================================================================
    op.create_table(
        'interactions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.String(128), sa.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('request_id', sa.String(255), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), sa.ForeignKey('tickets.id', ondelete='SET NULL'), nullable=True),
        sa.Column('channel', sa.String(20), nullable=False),
        sa.Column('request_text', sa.Text(), nullable=False),
        sa.Column('reply_text', sa.Text(), nullable=False),
        sa.Column('mode', sa.String(10), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('escalated', sa.Boolean(), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('actions', sa.JSON(), nullable=False),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint('customer_id', 'request_id', name='uq_interaction_request'),
    )
    op.create_index('idx_interactions_customer', 'interactions', ['customer_id', 'created_at'])

    # ==========================================================================
    # Handoffs
    # ==========================================================================
    op.create_table(
        'handoffs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.String(128), sa.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), sa.ForeignKey('tickets.id', ondelete='SET NULL'), nullable=True),
        sa.Column('request_key', sa.String(255), nullable=True),
        sa.Column('reason', sa.String(50), nullable=False),
        sa.Column('priority', sa.String(10), nullable=False),
        sa.Column('mode', sa.String(10), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('claimed_by', sa.String(128), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_by', sa.String(128), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('issues', sa.JSON(), nullable=False),
        sa.Column('actions', sa.JSON(), nullable=False),
        sa.Column('sla_due_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sla_breached_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('customer_id', 'request_key', name='uq_handoff_request'),
    )
    op.create_index('idx_handoffs_sla', 'handoffs', ['status', 'sla_due_at'])
    op.create_index('idx_handoffs_customer', 'handoffs', ['customer_id', 'created_at'])

    # ==========================================================================
    # Outbox
    # ==========================================================================
    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('type', sa.String(64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(255), nullable=False, unique=True),
        *_timestamps(),
    )
    op.create_index('idx_outbox_eligible', 'outbox_events', ['status', 'next_attempt_at'])

    # ==========================================================================
    # AI artifacts
    # ==========================================================================
    op.create_table(
        'ai_artifacts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('handoff_id', sa.Uuid(), sa.ForeignKey('handoffs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(64), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('input', sa.JSON(), nullable=False),
        sa.Column('output', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('handoff_id', 'type', name='uq_ai_artifact_handoff_type'),
    )


def downgrade() -> None:
    op.drop_table('ai_artifacts')
    op.drop_index('idx_outbox_eligible', table_name='outbox_events')
    op.drop_table('outbox_events')
    op.drop_index('idx_handoffs_customer', table_name='handoffs')
    op.drop_index('idx_handoffs_sla', table_name='handoffs')
    op.drop_table('handoffs')
    op.drop_index('idx_interactions_customer', table_name='interactions')
    op.drop_table('interactions')
    op.drop_index('idx_tickets_customer', table_name='tickets')
    op.drop_table('tickets')
    op.drop_table('customers')
