"""Credential encryption using AES-256-GCM.

Security considerations:
- AES-256-GCM authenticated encryption
- Encryption key derived from ENCRYPTION_KEY using HKDF
- Unique random 96-bit nonce per encryption
- Associated data binds a ciphertext to its (seller, provider, sandbox) row,
  so a payload copied onto another seller's row fails to decrypt
"""

import base64
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from errors import VaultError


@dataclass
class EncryptedPayload:
    """Encrypted credential container.

    Attributes:
        version: Encryption format version (for future upgrades)
        nonce: Base64-encoded nonce used for encryption
        ciphertext: Base64-encoded encrypted data (includes GCM tag)
        context: Context string used as associated data
    """
    version: int
    nonce: str
    ciphertext: str
    context: Optional[str] = None

    def to_json(self) -> str:
        """Serialize to JSON string for database storage."""
        return json.dumps({
            "v": self.version,
            "n": self.nonce,
            "c": self.ciphertext,
            "ctx": self.context
        })

    @classmethod
    def from_json(cls, data: str) -> "EncryptedPayload":
        try:
            parsed = json.loads(data)
            return cls(
                version=parsed["v"],
                nonce=parsed["n"],
                ciphertext=parsed["c"],
                context=parsed.get("ctx")
            )
        except (ValueError, KeyError, TypeError) as e:
            raise VaultError(f"Stored credential is not a valid encrypted payload: {e}")


def credential_context(seller_id: str, provider: str, sandbox: bool) -> str:
    """Associated-data string for a credential row."""
    return f"provider_credential:{seller_id}:{provider}:{'sandbox' if sandbox else 'live'}"


class CredentialCipher:
    """AES-256-GCM cipher for credential payloads.

    Example:
        cipher = CredentialCipher("key material")
        encrypted = cipher.encrypt({"access_token": "..."}, context="provider_credential:s1:shipbob:live")
        cipher.decrypt(encrypted)
    """

    HKDF_INFO = b"stockbridge-credential-vault-v1"
    VERSION = 1

    def __init__(self, key_material: str):
        if not key_material:
            raise VaultError("ENCRYPTION_KEY is not set")
        self._key = self._derive_key(key_material.encode())

    def _derive_key(self, key_material: bytes) -> bytes:
        """Derive a 256-bit encryption key using HKDF."""
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=self.HKDF_INFO,
        )
        return hkdf.derive(key_material)

    def encrypt(self, payload: Dict[str, Any], context: str) -> EncryptedPayload:
        plaintext = json.dumps(payload, sort_keys=True).encode()
        nonce = os.urandom(12)
        ciphertext = AESGCM(self._key).encrypt(nonce, plaintext, context.encode())

        return EncryptedPayload(
            version=self.VERSION,
            nonce=base64.b64encode(nonce).decode(),
            ciphertext=base64.b64encode(ciphertext).decode(),
            context=context
        )

    def decrypt(self, encrypted: EncryptedPayload, context: str) -> Dict[str, Any]:
        """Decrypt a payload that must have been sealed under `context`.

        Raises:
            VaultError: Wrong key, tampered data, or context mismatch
        """
        if encrypted.version != self.VERSION:
            raise VaultError(f"Unsupported encryption version: {encrypted.version}")
        if encrypted.context != context:
            raise VaultError("Credential context mismatch")

        try:
            nonce = base64.b64decode(encrypted.nonce)
            ciphertext = base64.b64decode(encrypted.ciphertext)
            plaintext = AESGCM(self._key).decrypt(nonce, ciphertext, context.encode())
        except (InvalidTag, ValueError) as e:
            raise VaultError(f"Decryption failed - invalid key or tampered data: {type(e).__name__}")

        return json.loads(plaintext.decode())

    def encrypt_to_json(self, payload: Dict[str, Any], context: str) -> str:
        return self.encrypt(payload, context).to_json()

    def decrypt_from_json(self, json_data: str, context: str) -> Dict[str, Any]:
        return self.decrypt(EncryptedPayload.from_json(json_data), context)
