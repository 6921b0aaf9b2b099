"""create api_key and audit_log tables

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create seller API keys and the append-only audit log."""

    op.create_table(
        'api_key',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('name', sa.Text, nullable=False, server_default='default'),
        sa.Column('key_hash', sa.Text, nullable=False, comment='SHA-256 of the plaintext key'),
        sa.Column('active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('idx_api_key_hash', 'api_key', ['key_hash'], unique=True)
    op.create_index('idx_api_key_seller', 'api_key', ['seller_id'])

    op.create_table(
        'audit_log',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('seller_id', sa.Text, nullable=True),
        sa.Column('action', sa.Text, nullable=False),
        sa.Column('entity_type', sa.Text, nullable=True),
        sa.Column('entity_id', sa.Text, nullable=True),
        sa.Column('security_event', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('metadata_json', JSONB, nullable=True),
        sa.Column('request_id', sa.Text, nullable=True),
        sa.Column('ip_address', sa.Text, nullable=True),
        sa.Column('user_agent', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_audit_log_seller_id', 'audit_log', ['seller_id'])
    op.create_index('ix_audit_log_seller_id_created_at', 'audit_log', ['seller_id', 'created_at'])
    op.create_index('ix_audit_log_action', 'audit_log', ['action'])


def downgrade() -> None:
    op.drop_index('ix_audit_log_action', table_name='audit_log')
    op.drop_index('ix_audit_log_seller_id_created_at', table_name='audit_log')
    op.drop_index('ix_audit_log_seller_id', table_name='audit_log')
    op.drop_table('audit_log')
    op.drop_index('idx_api_key_seller', table_name='api_key')
    op.drop_index('idx_api_key_hash', table_name='api_key')
    op.drop_table('api_key')
