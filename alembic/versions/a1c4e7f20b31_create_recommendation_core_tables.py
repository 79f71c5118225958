"""create_recommendation_core_tables

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-16 09:12:40.118204

Creates the two persisted tables of the recommendation core:
- marketing_learnings   account-scoped learned rules
- recommendation_logs   emitted recommendations, feedback and outcomes

A partial unique index keeps at most one pending row per
(account_id, recommendation_key).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c4e7f20b31'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create marketing_learnings and recommendation_logs."""
    op.create_table(
        'marketing_learnings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('account_id', sa.String(), nullable=False),
        sa.Column('platform', sa.String(), nullable=False, server_default='both'),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('condition', sa.Text(), nullable=False),
        sa.Column('recommendation', sa.Text(), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('source', sa.String(), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_pending', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('applied_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('success_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('derived_from_recommendation_ids', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_marketing_learnings_id', 'marketing_learnings', ['id'])
    op.create_index('ix_marketing_learnings_account_id', 'marketing_learnings', ['account_id'])
    op.create_index('ix_marketing_learnings_created_at', 'marketing_learnings', ['created_at'])
    op.create_index(
        'ix_marketing_learnings_account_active',
        'marketing_learnings',
        ['account_id', 'is_active', 'is_pending'],
    )

    op.create_table(
        'recommendation_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('account_id', sa.String(), nullable=False),
        sa.Column('recommendation_id', sa.String(), nullable=False),
        sa.Column('recommendation_key', sa.String(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=True),
        sa.Column('platform', sa.String(), nullable=True),
        sa.Column('campaign_name', sa.String(), nullable=True),
        sa.Column('confidence_score', sa.Integer(), nullable=True),
        sa.Column('confidence_level', sa.String(), nullable=True),
        sa.Column('data_points', sa.JSON(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('implemented_at', sa.DateTime(), nullable=True),
        sa.Column('dismissed_at', sa.DateTime(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.Column('dismiss_reason', sa.String(), nullable=True),
        sa.Column('feedback_notes', sa.Text(), nullable=True),
        sa.Column('outcome_recorded_at', sa.DateTime(), nullable=True),
        sa.Column('roas_before', sa.Float(), nullable=True),
        sa.Column('roas_after', sa.Float(), nullable=True),
        sa.Column('roas_change', sa.Float(), nullable=True),
        sa.Column('was_successful', sa.Boolean(), nullable=True),
        sa.Column('outcome_notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_recommendation_logs_id', 'recommendation_logs', ['id'])
    op.create_index('ix_recommendation_logs_account_id', 'recommendation_logs', ['account_id'])
    op.create_index('ix_recommendation_logs_recommendation_id', 'recommendation_logs', ['recommendation_id'])
    op.create_index('ix_recommendation_logs_category', 'recommendation_logs', ['category'])
    op.create_index('ix_recommendation_logs_status', 'recommendation_logs', ['status'])
    op.create_index('ix_recommendation_logs_created_at', 'recommendation_logs', ['created_at'])
    op.create_index('ix_recommendation_logs_account_status', 'recommendation_logs', ['account_id', 'status'])
    op.create_index(
        'uq_recommendation_logs_pending_key',
        'recommendation_logs',
        ['account_id', 'recommendation_key'],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    """Drop recommendation core tables."""
    op.drop_index('uq_recommendation_logs_pending_key', table_name='recommendation_logs')
    op.drop_index('ix_recommendation_logs_account_status', table_name='recommendation_logs')
    op.drop_index('ix_recommendation_logs_created_at', table_name='recommendation_logs')
    op.drop_index('ix_recommendation_logs_status', table_name='recommendation_logs')
    op.drop_index('ix_recommendation_logs_category', table_name='recommendation_logs')
    op.drop_index('ix_recommendation_logs_recommendation_id', table_name='recommendation_logs')
    op.drop_index('ix_recommendation_logs_account_id', table_name='recommendation_logs')
    op.drop_index('ix_recommendation_logs_id', table_name='recommendation_logs')
    op.drop_table('recommendation_logs')

    op.drop_index('ix_marketing_learnings_account_active', table_name='marketing_learnings')
    op.drop_index('ix_marketing_learnings_created_at', table_name='marketing_learnings')
    op.drop_index('ix_marketing_learnings_account_id', table_name='marketing_learnings')
    op.drop_index('ix_marketing_learnings_id', table_name='marketing_learnings')
    op.drop_table('marketing_learnings')
