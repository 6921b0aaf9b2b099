"""API key issuing and verification.

Keys are random URL-safe strings prefixed "sb_"; only their SHA-256 digest is
stored. The plaintext is returned once by issue_api_key.
"""

import hashlib
import secrets
from typing import Optional

from sqlalchemy.orm import Session

from models import ApiKey, utcnow

KEY_PREFIX = "sb_"


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode()).hexdigest()


def generate_api_key() -> str:
    return KEY_PREFIX + secrets.token_urlsafe(32)


def issue_api_key(db: Session, seller_id: str, name: str = "default") -> tuple[ApiKey, str]:
    """Create a key for a seller.

    Returns:
        (ApiKey row, plaintext key) - the plaintext is not recoverable later
    """
    plaintext = generate_api_key()
    record = ApiKey(seller_id=seller_id, name=name, key_hash=hash_api_key(plaintext), active=True)
    db.add(record)
    db.commit()
    return record, plaintext


def verify_api_key(db: Session, api_key: Optional[str]) -> Optional[ApiKey]:
    """Resolve an active key, touching last_used_at. None when unknown or revoked."""
    if not api_key:
        return None
    record = db.query(ApiKey).filter(
        ApiKey.key_hash == hash_api_key(api_key),
        ApiKey.active.is_(True),
    ).first()
    if record is None:
        return None
    record.last_used_at = utcnow()
    db.commit()
    return record


def revoke_api_key(db: Session, api_key_id) -> bool:
    record = db.get(ApiKey, api_key_id)
    if record is None:
        return False
    record.active = False
    db.commit()
    return True
