"""ProviderCredential model - encrypted provider credentials per seller"""

import uuid
from enum import Enum

from sqlalchemy import Column, Text, Boolean, Uuid, Index, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import validates

from .base import Base, UTCDateTime, utcnow


class ConnectionType(str, Enum):
    """How the seller linked the provider account."""
    OAUTH = "oauth"
    API_KEY = "apiKey"
    MANUAL = "manual"


class CredentialStatus(str, Enum):
    """Credential lifecycle status."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    EXPIRED = "expired"


class ProviderCredential(Base):
    """
    Provider Credential - one row per (seller, provider, sandbox).

    encrypted_payload holds the serialized EncryptedPayload JSON produced by
    the vault (access/refresh token or API key + secret). It is only read and
    written through CredentialVault; a disconnect wipes it and keeps the row
    for history.
    """
    __tablename__ = "provider_credential"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Text, nullable=False)
    provider_name = Column(Text, nullable=False)
    sandbox = Column(Boolean, nullable=False, default=False)
    encrypted_payload = Column(
        Text,
        nullable=True,
        comment="AES-256-GCM encrypted credential JSON, NULL once disconnected"
    )
    connection_type = Column(Text, nullable=False, default=ConnectionType.OAUTH.value)
    status = Column(Text, nullable=False, default=CredentialStatus.CONNECTED.value)
    expires_at = Column(UTCDateTime, nullable=True, comment="Access token expiry, if any")
    connected_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("seller_id", "provider_name", "sandbox", name="uq_provider_credential_seller_provider"),
        CheckConstraint(
            "status IN ('connected', 'disconnected', 'expired')",
            name="ck_provider_credential_status"
        ),
        CheckConstraint(
            "connection_type IN ('oauth', 'apiKey', 'manual')",
            name="ck_provider_credential_connection_type"
        ),
        Index("idx_provider_credential_seller", "seller_id", "status"),
    )

    @validates("status")
    def validate_status(self, key, value):
        """Ensure status is valid."""
        valid = [s.value for s in CredentialStatus]
        if value not in valid:
            raise ValueError(f"Invalid status: {value}. Must be one of: {', '.join(valid)}")
        return value

    @validates("connection_type")
    def validate_connection_type(self, key, value):
        valid = [c.value for c in ConnectionType]
        if value not in valid:
            raise ValueError(f"Invalid connection_type: {value}. Must be one of: {', '.join(valid)}")
        return value

    def __repr__(self):
        return (
            f"<ProviderCredential(seller_id='{self.seller_id}', provider='{self.provider_name}', "
            f"sandbox={self.sandbox}, status='{self.status}')>"
        )
