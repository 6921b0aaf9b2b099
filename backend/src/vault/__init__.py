"""Credential vault: AES-256-GCM encryption at rest for provider credentials."""

from .encryption import CredentialCipher, EncryptedPayload, credential_context
from .service import CredentialVault, ResolvedCredential

__all__ = [
    "CredentialCipher",
    "EncryptedPayload",
    "credential_context",
    "CredentialVault",
    "ResolvedCredential",
]
