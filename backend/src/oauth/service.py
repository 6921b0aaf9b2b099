"""
OAuth Connector - authorization-code handshake for provider connections

begin_connect issues a random single-use state bound to (seller, provider,
sandbox) and returns the provider's authorization URL. complete_connect
consumes the state exactly once, exchanges the code, and stores the tokens
through the CredentialVault in a single write. Nothing is written unless the
token exchange fully succeeds.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from audit import log_audit_event
from config import Settings
from errors import InvalidOrExpiredState, ValidationFailed
from models import OAuthState, ConnectionType, utcnow
from providers import ProviderRegistry
from vault import CredentialVault


logger = logging.getLogger(__name__)


@dataclass
class ConnectionResult:
    seller_id: str
    provider: str
    sandbox: bool
    connected_at: datetime
    expires_at: Optional[datetime] = None


class OAuthConnector:
    """
    Usage:
        connector = container.oauth_connector(db)
        url = connector.begin_connect("seller-1", "shipbob", sandbox=False)
        ...  # provider redirects to /oauth/callback?code=...&state=...
        result = connector.complete_connect(code, state, sandbox=False)
    """

    def __init__(
        self,
        db: Session,
        registry: ProviderRegistry,
        vault: CredentialVault,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.registry = registry
        self.vault = vault
        self.settings = settings
        self.clock = clock

    def begin_connect(self, seller_id: str, provider: str, sandbox: bool = False) -> str:
        """
        Returns:
            Authorization URL to redirect the seller to

        Raises:
            UnknownProvider, ValidationFailed (provider has no OAuth flow or no client configured)
        """
        client = self.registry.get(provider)
        if not client.supports_oauth:
            raise ValidationFailed(f"{provider} does not support OAuth; use a manual connection")
        client_id, _ = self._client_credentials(provider)

        now = self.clock()
        state = secrets.token_urlsafe(32)
        redirect_uri = self.settings.oauth_redirect_uri
        self.db.add(OAuthState(
            state=state,
            seller_id=seller_id,
            provider_name=provider,
            sandbox=sandbox,
            redirect_uri=redirect_uri,
            created_at=now,
            expires_at=now + timedelta(seconds=self.settings.OAUTH_STATE_TTL_SECONDS),
        ))
        self.db.commit()

        logger.info(
            "OAuth connect started",
            extra={"seller_id": seller_id, "provider": provider, "operation": "oauth_begin"},
        )
        return client.build_authorization_url(state, redirect_uri, sandbox, client_id)

    def complete_connect(
        self,
        code: str,
        state: str,
        sandbox: bool = False,
        client_info: Optional[dict] = None,
    ) -> ConnectionResult:
        """
        Consume the state, exchange the code and store the tokens.

        Raises:
            InvalidOrExpiredState: Unknown, expired, already used, or sandbox mismatch
            ProviderAuthError / ProviderUnavailable: Token exchange failed (nothing stored)
        """
        now = self.clock()
        record = self.db.query(OAuthState).filter(OAuthState.state == state).first() if state else None
        if record is None or record.is_expired(now) or record.sandbox != sandbox:
            self._reject_state(record, client_info or {})

        seller_id, provider, redirect_uri = record.seller_id, record.provider_name, record.redirect_uri

        # Only the callback whose delete removed the row may proceed
        consumed = self.db.query(OAuthState).filter(OAuthState.state == state).delete(synchronize_session=False)
        self.db.commit()
        if consumed != 1:
            self._reject_state(None, client_info or {})

        client = self.registry.get(provider)
        client_id, client_secret = self._client_credentials(provider)
        tokens = client.exchange_code(code, redirect_uri, sandbox, client_id, client_secret)

        expires_at = tokens.expires_at(now)
        self.vault.put(
            self.db,
            seller_id,
            provider,
            tokens.to_payload(),
            sandbox=sandbox,
            connection_type=ConnectionType.OAUTH,
            expires_at=expires_at,
        )
        log_audit_event(
            self.db,
            action="connection.connected",
            seller_id=seller_id,
            entity_type="provider_credential",
            entity_id=provider,
            metadata={"provider": provider, "sandbox": sandbox, "connectionType": ConnectionType.OAUTH.value},
            **(client_info or {}),
        )
        self.db.commit()

        logger.info(
            "OAuth connect completed",
            extra={"seller_id": seller_id, "provider": provider, "operation": "oauth_complete"},
        )
        return ConnectionResult(
            seller_id=seller_id,
            provider=provider,
            sandbox=sandbox,
            connected_at=now,
            expires_at=expires_at,
        )

    def purge_expired_states(self, now: Optional[datetime] = None) -> int:
        now = now or self.clock()
        purged = self.db.query(OAuthState).filter(OAuthState.expires_at <= now).delete(synchronize_session=False)
        self.db.commit()
        return purged

    def _client_credentials(self, provider: str) -> tuple[str, str]:
        client_id, client_secret = self.settings.oauth_client(provider)
        if not client_id or not client_secret:
            raise ValidationFailed(f"OAuth client for {provider} is not configured")
        return client_id, client_secret

    def _reject_state(self, record: Optional[OAuthState], client_info: dict) -> None:
        log_audit_event(
            self.db,
            action="security.invalid_oauth_state",
            seller_id=record.seller_id if record is not None else None,
            entity_type="oauth_state",
            metadata={"provider": record.provider_name if record is not None else None},
            security_event=True,
            **client_info,
        )
        self.db.commit()
        raise InvalidOrExpiredState("OAuth state is invalid, expired or already used")
