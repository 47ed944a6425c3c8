"""Create billing tables

Revision ID: 0001_billing_tables
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_billing_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


OWNED_TABLES = ('billing_customers', 'subscriptions', 'credit_transactions')


def upgrade() -> None:
    """Create billing customers, subscriptions, credit ledger and webhook ledger."""

    op.create_table(
        'billing_customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_billing_customers_user_id', 'billing_customers', ['user_id'], unique=True)
    op.create_index('ix_billing_customers_customer_id', 'billing_customers', ['customer_id'], unique=True)

    op.create_table(
        'subscriptions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),

        # Stripe IDs
        sa.Column('stripe_customer_id', sa.String(255)),
        sa.Column('stripe_subscription_id', sa.String(255)),
        sa.Column('stripe_product_id', sa.String(255)),

        # Subscription details
        sa.Column('plan_name', sa.String(100)),
        sa.Column('status', sa.String(20), server_default='incomplete', nullable=False),

        # Billing period dates
        sa.Column('current_period_start', sa.DateTime(timezone=True)),
        sa.Column('current_period_end', sa.DateTime(timezone=True)),
        sa.Column('cancel_at_period_end', sa.Boolean, server_default='false', nullable=False),

        # Credits
        sa.Column('credits_allocated', sa.Integer, server_default='0', nullable=False),
        sa.Column('credits_remaining', sa.Integer, server_default='0', nullable=False),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'], unique=True)
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
    op.create_index(
        'ix_subscriptions_stripe_subscription_id',
        'subscriptions',
        ['stripe_subscription_id'],
        unique=True,
    )

    op.create_table(
        'credit_transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column(
            'subscription_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('subscriptions.id'),
        ),

        # External references
        sa.Column('reference_id', sa.String(255)),
        sa.Column('stripe_transaction_id', sa.String(255)),
        sa.Column('stripe_invoice_id', sa.String(255)),
        sa.Column('stripe_event_id', sa.String(255)),
        sa.Column('idempotency_key', sa.String(300), unique=True),

        # Amounts
        sa.Column('amount_paid', sa.Integer, server_default='0', nullable=False),
        sa.Column('credits_granted', sa.Integer, server_default='0', nullable=False),

        sa.Column('transaction_type', sa.String(30), nullable=False),
        sa.Column('description', sa.String(500)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_credit_transactions_user_id', 'credit_transactions', ['user_id'])
    op.create_index('ix_credit_transactions_subscription_id', 'credit_transactions', ['subscription_id'])
    op.create_index('ix_credit_transactions_reference_id', 'credit_transactions', ['reference_id'])
    op.create_index('ix_credit_transactions_stripe_invoice_id', 'credit_transactions', ['stripe_invoice_id'])

    op.create_table(
        'processed_webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column(
            'processed_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
    )
    # Index for cleanup queries (delete events older than X days)
    op.create_index(
        'ix_processed_webhook_events_processed_at',
        'processed_webhook_events',
        ['processed_at'],
    )

    # Enable RLS; users read their own rows, writes go through the service role
    for table in OWNED_TABLES:
        op.execute(f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY')
        op.execute(f"""
            CREATE POLICY "Users can view own {table}"
            ON {table} FOR SELECT
            TO authenticated
            USING (user_id = auth.uid()::text)
        """)
        op.execute(f"""
            CREATE POLICY "Service role manages {table}"
            ON {table} FOR ALL
            TO service_role
            USING (true)
            WITH CHECK (true)
        """)

    op.execute('ALTER TABLE processed_webhook_events ENABLE ROW LEVEL SECURITY')


def downgrade() -> None:
    """Drop billing tables."""

    for table in OWNED_TABLES:
        op.execute(f'DROP POLICY IF EXISTS "Users can view own {table}" ON {table}')
        op.execute(f'DROP POLICY IF EXISTS "Service role manages {table}" ON {table}')

    op.drop_index('ix_processed_webhook_events_processed_at', table_name='processed_webhook_events')
    op.drop_table('processed_webhook_events')
    op.drop_table('credit_transactions')
    op.drop_table('subscriptions')
    op.drop_table('billing_customers')
