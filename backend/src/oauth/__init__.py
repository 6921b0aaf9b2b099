"""OAuth connection handshake for providers."""

from .service import OAuthConnector, ConnectionResult

__all__ = ["OAuthConnector", "ConnectionResult"]
