"""Append-only audit trail."""

from .service import log_audit_event, client_info

__all__ = ["log_audit_event", "client_info"]
