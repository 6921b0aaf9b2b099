"""HMAC-SHA256 signatures for inbound and outbound webhooks."""

import hashlib
import hmac
from typing import Optional


def compute_signature(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of the raw body."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: Optional[str], body: bytes, signature: Optional[str]) -> bool:
    """Constant-time check of a hex signature, optionally prefixed "sha256="."""
    if not secret or not signature:
        return False
    provided = signature.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256="):]
    return hmac.compare_digest(compute_signature(secret, body), provided.lower())


def sign_delivery(secret: str, timestamp: str, body: bytes) -> str:
    """Outbound signature over "{timestamp}.{body}" so a captured body cannot be replayed with a new timestamp."""
    return "sha256=" + compute_signature(secret, timestamp.encode() + b"." + body)
