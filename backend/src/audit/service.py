"""Audit logging service.

Append-only audit entries for events a seller or operator may need to
reconstruct later:
- connection.connected, connection.disconnected
- schedule.created, schedule.updated
- transfer.rejected, transfer.cancelled
- security.invalid_signature, security.invalid_oauth_state (security_event=True)
"""

import logging
from typing import Optional, Dict, Any

from fastapi import Request
from sqlalchemy.orm import Session

from models import AuditLog
from observability.request_id import request_id_var


logger = logging.getLogger(__name__)


def log_audit_event(
    db: Session,
    action: str,
    seller_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[Any] = None,
    metadata: Optional[Dict[str, Any]] = None,
    security_event: bool = False,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    """Create an audit log entry.

    The entry is added and flushed; committing is left to the caller so the
    audit row lands in the same transaction as the change it describes.

    Args:
        db: Database session
        action: Event action (e.g. "schedule.created", "security.invalid_signature")
        seller_id: Seller the event belongs to (None when not yet known)
        entity_type: Type of entity affected (e.g. "sync_schedule", "warehouse_transfer")
        entity_id: ID of affected entity
        metadata: Additional context as JSON (never secrets)
        security_event: True for security-relevant rejections
        ip_address: Client IP address
        user_agent: Client User-Agent header

    Returns:
        AuditLog: The created audit log entry
    """
    audit_entry = AuditLog(
        seller_id=seller_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        security_event=security_event,
        metadata_json=metadata,
        request_id=request_id_var.get(),
        ip_address=ip_address,
        user_agent=user_agent,
    )

    db.add(audit_entry)
    db.flush()

    if security_event:
        logger.warning(
            f"Security event recorded: {action}",
            extra={"seller_id": seller_id, "security_event": True, "operation": action},
        )
    return audit_entry


def client_info(request: Optional[Request]) -> Dict[str, Optional[str]]:
    """ip_address/user_agent kwargs for log_audit_event from an HTTP request."""
    if request is None:
        return {"ip_address": None, "user_agent": None}
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    elif request.client:
        ip = request.client.host
    else:
        ip = None
    return {"ip_address": ip, "user_agent": request.headers.get("User-Agent")}
