"""OAuthState model - single-use state tokens for the authorization-code handshake"""

from sqlalchemy import Column, Text, Boolean, Index

from .base import Base, UTCDateTime, utcnow


class OAuthState(Base):
    """Short-lived CSRF state bound to (seller, provider, sandbox).

    Rows are deleted when consumed by the callback; expired rows are purged
    by the oauth.purge_expired_states beat task.
    """
    __tablename__ = "oauth_state"
    __table_args__ = (
        Index("idx_oauth_state_expires", "expires_at"),
    )

    state = Column(Text, primary_key=True)
    seller_id = Column(Text, nullable=False)
    provider_name = Column(Text, nullable=False)
    sandbox = Column(Boolean, nullable=False, default=False)
    redirect_uri = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    expires_at = Column(UTCDateTime, nullable=False)

    def is_expired(self, now) -> bool:
        return self.expires_at <= now

    def __repr__(self):
        return f"<OAuthState(seller_id='{self.seller_id}', provider='{self.provider_name}', sandbox={self.sandbox})>"
