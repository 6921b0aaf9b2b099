"""create provider_credential and oauth_state tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the credential vault table and pending OAuth handshakes."""

    op.create_table(
        'provider_credential',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('provider_name', sa.Text, nullable=False),
        sa.Column('sandbox', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('encrypted_payload', sa.Text, nullable=True, comment='AES-256-GCM encrypted credential JSON, NULL once disconnected'),
        sa.Column('connection_type', sa.Text, nullable=False, server_default='oauth'),
        sa.Column('status', sa.Text, nullable=False, server_default='connected'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('connected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('seller_id', 'provider_name', 'sandbox', name='uq_provider_credential_seller_provider'),
        sa.CheckConstraint("status IN ('connected', 'disconnected', 'expired')", name='ck_provider_credential_status'),
        sa.CheckConstraint(
            "connection_type IN ('oauth', 'apiKey', 'manual')",
            name='ck_provider_credential_connection_type'
        ),
    )
    op.create_index('idx_provider_credential_seller', 'provider_credential', ['seller_id', 'status'])

    op.create_table(
        'oauth_state',
        sa.Column('state', sa.Text, primary_key=True),
        sa.Column('seller_id', sa.Text, nullable=False),
        sa.Column('provider_name', sa.Text, nullable=False),
        sa.Column('sandbox', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('redirect_uri', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_oauth_state_expires', 'oauth_state', ['expires_at'])


def downgrade() -> None:
    op.drop_index('idx_oauth_state_expires', table_name='oauth_state')
    op.drop_table('oauth_state')
    op.drop_index('idx_provider_credential_seller', table_name='provider_credential')
    op.drop_table('provider_credential')
