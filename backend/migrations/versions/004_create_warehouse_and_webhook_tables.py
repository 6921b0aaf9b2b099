"""create warehouse, transfer and webhook tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision = '004'
down_revision = '003'
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the stock mirror, transfer saga records and webhook fan-out tables."""

    op.create_table(
        'warehouse',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('provider_name', sa.Text, nullable=False),
        sa.Column('provider_ref', sa.Text, nullable=False),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('location', sa.Text, nullable=True),
        sa.Column('active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('seller_id', 'provider_name', 'provider_ref', name='uq_warehouse_provider_ref'),
    )
    op.create_index('idx_warehouse_seller', 'warehouse', ['seller_id', 'active'])

    op.create_table(
        'warehouse_stock',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouse.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Text, nullable=False),
        sa.Column('sku', sa.Text, nullable=False),
        sa.Column('provider_ref', sa.Text, nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False, server_default='0'),
        sa.Column('available_quantity', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('warehouse_id', 'product_id', name='uq_warehouse_stock_product'),
        sa.CheckConstraint('quantity >= 0', name='ck_warehouse_stock_quantity'),
        sa.CheckConstraint('available_quantity >= 0', name='ck_warehouse_stock_available'),
    )
    op.create_index('idx_warehouse_stock_sku', 'warehouse_stock', ['seller_id', 'sku'])

    op.create_table(
        'warehouse_transfer',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('product_id', sa.Text, nullable=False),
        sa.Column('sku', sa.Text, nullable=True),
        sa.Column('source_warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouse.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('target_warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouse.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('transfer_fee', sa.Numeric(12, 2), nullable=False, server_default='0.00'),
        sa.Column('status', sa.Text, nullable=False, server_default='pending'),
        sa.Column('provider_transaction_id', sa.Text, nullable=True),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('request_id', sa.Text, nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('quantity > 0', name='ck_warehouse_transfer_quantity'),
        sa.CheckConstraint(
            "status IN ('pending', 'scheduled', 'processing', 'completed', 'failed', 'cancelled')",
            name='ck_warehouse_transfer_status'
        ),
    )
    op.create_index('idx_warehouse_transfer_seller', 'warehouse_transfer', ['seller_id', 'created_at'])
    op.create_index('idx_warehouse_transfer_due', 'warehouse_transfer', ['status', 'scheduled_at'])

    op.create_table(
        'webhook_event',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('source_provider', sa.Text, nullable=False),
        sa.Column('event_type', sa.Text, nullable=False),
        sa.Column('order_id', sa.Text, nullable=True),
        sa.Column('external_id', sa.Text, nullable=True),
        sa.Column('payload', JSONB, nullable=False),
        sa.Column('payload_hash', sa.Text, nullable=False),
        sa.Column('signature_valid', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('request_id', sa.Text, nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('payload_hash', name='uq_webhook_event_payload_hash'),
    )
    op.create_index('idx_webhook_event_seller', 'webhook_event', ['seller_id', 'received_at'])

    op.create_table(
        'webhook_subscription',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('event_type', sa.Text, nullable=False),
        sa.Column('url', sa.Text, nullable=False),
        sa.Column('secret', sa.Text, nullable=False),
        sa.Column('active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('seller_id', 'event_type', 'url', name='uq_webhook_subscription_endpoint'),
    )
    op.create_index('idx_webhook_subscription_lookup', 'webhook_subscription', ['seller_id', 'event_type', 'active'])

    op.create_table(
        'webhook_delivery',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('event_id', UUID(as_uuid=True), sa.ForeignKey('webhook_event.id', ondelete='SET NULL'), nullable=True),
        sa.Column('subscription_id', UUID(as_uuid=True), sa.ForeignKey('webhook_subscription.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subscriber_url', sa.Text, nullable=False),
        sa.Column('event_type', sa.Text, nullable=False),
        sa.Column('payload', JSONB, nullable=False),
        sa.Column('dedupe_key', sa.Text, nullable=False),
        sa.Column('attempt', sa.Integer, nullable=False, server_default='0'),
        sa.Column('status', sa.Text, nullable=False, server_default='pending'),
        sa.Column('last_status_code', sa.Integer, nullable=True),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('dedupe_key', name='uq_webhook_delivery_dedupe'),
        sa.CheckConstraint("status IN ('pending', 'delivered', 'dead_lettered')", name='ck_webhook_delivery_status'),
    )
    op.create_index('idx_webhook_delivery_due', 'webhook_delivery', ['status', 'next_attempt_at'])
    op.create_index('idx_webhook_delivery_seller', 'webhook_delivery', ['seller_id', 'status'])


def downgrade() -> None:
    op.drop_table('webhook_delivery')
    op.drop_table('webhook_subscription')
    op.drop_table('webhook_event')
    op.drop_table('warehouse_transfer')
    op.drop_table('warehouse_stock')
    op.drop_table('warehouse')
