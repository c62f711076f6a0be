"""billing_baseline

Revision ID: 4c1d2e9a7b30
Revises: 
Create Date: 2026-10-17 10:12:41.118204

Creates the profile, plan, subscription, payment, webhook and usage tables.
Existing tables are left untouched.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '4c1d2e9a7b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CURRENT_STATUS_SQL = "status IN ('active', 'trialing', 'past_due')"


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    if not table_exists('profiles'):
        op.create_table('profiles',
            sa.Column('id', sa.String(length=64), nullable=False),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('name', sa.String(), nullable=True),
            sa.Column('subscription_tier', sa.String(length=20), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_profiles_email'), 'profiles', ['email'], unique=True)

    if not table_exists('subscription_plans'):
        op.create_table('subscription_plans',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('name', sa.String(length=50), nullable=False),
            sa.Column('description', sa.String(), nullable=True),
            sa.Column('price_monthly', sa.Numeric(precision=10, scale=2), nullable=False),
            sa.Column('price_yearly', sa.Numeric(precision=10, scale=2), nullable=True),
            sa.Column('currency', sa.String(length=3), nullable=False),
            sa.Column('features', sa.JSON(), nullable=False),
            sa.Column('limits', sa.JSON(), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name')
        )

    if not table_exists('user_subscriptions'):
        op.create_table('user_subscriptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('plan_id', sa.String(length=36), nullable=False),
            sa.Column('razorpay_subscription_id', sa.String(), nullable=True),
            sa.Column('razorpay_customer_id', sa.String(), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False),
            sa.Column('billing_cycle', sa.String(length=10), nullable=False),
            sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=True),
            sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
            sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('metadata', sa.JSON(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['plan_id'], ['subscription_plans.id'], ),
            sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('razorpay_subscription_id')
        )
        op.create_index(op.f('ix_user_subscriptions_id'), 'user_subscriptions', ['id'], unique=False)
        op.create_index(op.f('ix_user_subscriptions_user_id'), 'user_subscriptions', ['user_id'], unique=False)
        op.create_index(
            'uq_user_subscriptions_current',
            'user_subscriptions',
            ['user_id'],
            unique=True,
            postgresql_where=sa.text(CURRENT_STATUS_SQL),
            sqlite_where=sa.text(CURRENT_STATUS_SQL),
        )

    if not table_exists('payment_history'):
        op.create_table('payment_history',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('subscription_id', sa.Integer(), nullable=True),
            sa.Column('razorpay_order_id', sa.String(), nullable=True),
            sa.Column('razorpay_payment_id', sa.String(), nullable=True),
            sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
            sa.Column('currency', sa.String(length=3), nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False),
            sa.Column('method', sa.String(length=30), nullable=True),
            sa.Column('description', sa.String(), nullable=True),
            sa.Column('receipt', sa.String(), nullable=True),
            sa.Column('metadata', sa.JSON(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['subscription_id'], ['user_subscriptions.id'], ),
            sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_payment_history_id'), 'payment_history', ['id'], unique=False)
        op.create_index(op.f('ix_payment_history_user_id'), 'payment_history', ['user_id'], unique=False)
        op.create_index(op.f('ix_payment_history_razorpay_order_id'), 'payment_history', ['razorpay_order_id'], unique=False)
        op.create_index(op.f('ix_payment_history_razorpay_payment_id'), 'payment_history', ['razorpay_payment_id'], unique=False)

    if not table_exists('webhook_events'):
        op.create_table('webhook_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('event_id', sa.String(), nullable=False),
            sa.Column('event_type', sa.String(), nullable=False),
            sa.Column('account_id', sa.String(), nullable=True),
            sa.Column('payload', sa.JSON(), nullable=False),
            sa.Column('processed', sa.Boolean(), nullable=False),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_webhook_events_id'), 'webhook_events', ['id'], unique=False)
        op.create_index(op.f('ix_webhook_events_event_id'), 'webhook_events', ['event_id'], unique=True)
        op.create_index(op.f('ix_webhook_events_event_type'), 'webhook_events', ['event_type'], unique=False)

    if not table_exists('usage_tracking'):
        op.create_table('usage_tracking',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('resource_type', sa.String(), nullable=False),
            sa.Column('usage_count', sa.Integer(), nullable=False),
            sa.Column('period_start', sa.DateTime(timezone=True), nullable=False),
            sa.Column('period_end', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_usage_tracking_id'), 'usage_tracking', ['id'], unique=False)
        op.create_index(op.f('ix_usage_tracking_user_id'), 'usage_tracking', ['user_id'], unique=False)
        op.create_index('idx_usage_user_resource_period', 'usage_tracking', ['user_id', 'resource_type', 'period_start'], unique=False)


def downgrade() -> None:
    op.drop_table('usage_tracking')
    op.drop_table('webhook_events')
    op.drop_table('payment_history')
    op.drop_table('user_subscriptions')
    op.drop_table('subscription_plans')
    op.drop_table('profiles')
