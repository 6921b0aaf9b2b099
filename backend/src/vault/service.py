"""CredentialVault - sole owner of ProviderCredential rows.

Encrypts provider credentials and OAuth tokens at rest and hands decrypted
payloads back only for the duration of a call. Every other component reads
credentials through this service; none of them persist decrypted secrets.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from errors import CredentialNotFound, ProviderAuthError
from models import ProviderCredential, ConnectionType, CredentialStatus, utcnow
from .encryption import CredentialCipher, credential_context


logger = logging.getLogger(__name__)


@dataclass
class ResolvedCredential:
    """Decrypted credential for one call stack. Never persist or cache it."""
    seller_id: str
    provider: str
    sandbox: bool
    connection_type: str
    payload: dict[str, Any]
    expires_at: Optional[datetime] = None

    def for_client(self) -> dict[str, Any]:
        """Credential dict passed to ProviderClient calls."""
        return {**self.payload, "sandbox": self.sandbox}

    def __repr__(self):
        # Keep secrets out of logs and tracebacks
        return (
            f"ResolvedCredential(seller_id='{self.seller_id}', provider='{self.provider}', "
            f"sandbox={self.sandbox}, connection_type='{self.connection_type}')"
        )


class CredentialVault:
    """
    Get/put provider credentials by (seller, provider).

    Usage:
        vault = CredentialVault(CredentialCipher(settings.ENCRYPTION_KEY))
        vault.put(db, "seller-1", "shipbob", {"access_token": "..."}, connection_type=ConnectionType.OAUTH)
        credential = vault.get(db, "seller-1", "shipbob")
        client.get_inventory(credential.for_client())
    """

    def __init__(self, cipher: CredentialCipher, clock: Callable[[], datetime] = utcnow):
        self._cipher = cipher
        self._clock = clock

    def put(
        self,
        db: Session,
        seller_id: str,
        provider: str,
        payload: dict[str, Any],
        *,
        sandbox: bool = False,
        connection_type: ConnectionType = ConnectionType.OAUTH,
        expires_at: Optional[datetime] = None,
    ) -> ProviderCredential:
        """
        Encrypt and store a credential, replacing any previous one for the same
        (seller, provider, sandbox). Committed in a single write.
        """
        now = self._clock()
        encrypted = self._cipher.encrypt_to_json(payload, credential_context(seller_id, provider, sandbox))

        credential = self._find_row(db, seller_id, provider, sandbox)
        if credential is None:
            credential = ProviderCredential(seller_id=seller_id, provider_name=provider, sandbox=sandbox)
            db.add(credential)

        credential.encrypted_payload = encrypted
        credential.connection_type = ConnectionType(connection_type).value
        credential.status = CredentialStatus.CONNECTED.value
        credential.expires_at = expires_at
        credential.connected_at = now
        db.commit()

        logger.info(
            f"Stored {credential.connection_type} credential",
            extra={"seller_id": seller_id, "provider": provider},
        )
        return credential

    def get(
        self,
        db: Session,
        seller_id: str,
        provider: str,
        sandbox: Optional[bool] = None,
    ) -> ResolvedCredential:
        """
        Decrypt the seller's credential for a provider.

        With sandbox=None the live credential is preferred over the sandbox one.

        Raises:
            CredentialNotFound: No connected credential
            ProviderAuthError: Credential expired (seller must reconnect)
            VaultError: Stored payload cannot be decrypted
        """
        credential = self.find(db, seller_id, provider, sandbox)
        if credential is None or credential.status == CredentialStatus.DISCONNECTED.value:
            raise CredentialNotFound(
                f"No {provider} connection for seller {seller_id}",
                provider=provider,
            )

        if credential.status == CredentialStatus.EXPIRED.value or (
            credential.expires_at is not None and credential.expires_at <= self._clock()
        ):
            raise ProviderAuthError(
                f"{provider} credential expired, reconnect required",
                provider=provider,
            )

        payload = self._cipher.decrypt_from_json(
            credential.encrypted_payload,
            credential_context(seller_id, provider, credential.sandbox),
        )
        return ResolvedCredential(
            seller_id=seller_id,
            provider=provider,
            sandbox=credential.sandbox,
            connection_type=credential.connection_type,
            payload=payload,
            expires_at=credential.expires_at,
        )

    def find(
        self,
        db: Session,
        seller_id: str,
        provider: str,
        sandbox: Optional[bool] = None,
    ) -> Optional[ProviderCredential]:
        """Credential row (any status), live preferred when sandbox is None."""
        if sandbox is not None:
            return self._find_row(db, seller_id, provider, sandbox)

        rows = db.execute(
            select(ProviderCredential).where(
                ProviderCredential.seller_id == seller_id,
                ProviderCredential.provider_name == provider,
            )
        ).scalars().all()
        if not rows:
            return None
        # connected before expired before disconnected, live before sandbox
        order = {CredentialStatus.CONNECTED.value: 0, CredentialStatus.EXPIRED.value: 1}
        return sorted(rows, key=lambda r: (order.get(r.status, 2), r.sandbox))[0]

    def is_connected(self, db: Session, seller_id: str, provider: str) -> bool:
        credential = self.find(db, seller_id, provider)
        return credential is not None and credential.status == CredentialStatus.CONNECTED.value

    def mark_expired(self, db: Session, seller_id: str, provider: str, sandbox: Optional[bool] = None) -> None:
        """Flag a credential the provider rejected; it stays unusable until reconnected."""
        credential = self.find(db, seller_id, provider, sandbox)
        if credential is None or credential.status != CredentialStatus.CONNECTED.value:
            return
        credential.status = CredentialStatus.EXPIRED.value
        db.commit()
        logger.warning(
            "Credential marked expired after provider rejection",
            extra={"seller_id": seller_id, "provider": provider},
        )

    def disconnect(self, db: Session, seller_id: str, provider: str) -> int:
        """
        Seller-initiated disconnect: wipe payloads, keep rows as disconnected.

        Returns:
            Number of credential rows disconnected (live and sandbox)
        """
        rows = db.execute(
            select(ProviderCredential).where(
                ProviderCredential.seller_id == seller_id,
                ProviderCredential.provider_name == provider,
                ProviderCredential.status != CredentialStatus.DISCONNECTED.value,
            )
        ).scalars().all()
        if not rows:
            raise CredentialNotFound(f"No {provider} connection for seller {seller_id}", provider=provider)

        for credential in rows:
            credential.status = CredentialStatus.DISCONNECTED.value
            credential.encrypted_payload = None
            credential.expires_at = None
        db.commit()
        return len(rows)

    def list_connections(self, db: Session, seller_id: str) -> list[ProviderCredential]:
        return list(db.execute(
            select(ProviderCredential)
            .where(ProviderCredential.seller_id == seller_id)
            .order_by(ProviderCredential.provider_name, ProviderCredential.sandbox)
        ).scalars().all())

    def _find_row(self, db: Session, seller_id: str, provider: str, sandbox: bool) -> Optional[ProviderCredential]:
        return db.execute(
            select(ProviderCredential).where(
                ProviderCredential.seller_id == seller_id,
                ProviderCredential.provider_name == provider,
                ProviderCredential.sandbox == sandbox,
            )
        ).scalar_one_or_none()
