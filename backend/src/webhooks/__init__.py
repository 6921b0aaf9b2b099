"""Inbound provider webhooks and outbound subscriber fan-out."""

from .gateway import WebhookGateway, GatewayResult, PROVIDER_HEADER, signature_header, payload_hash
from .dispatcher import WebhookDispatcher
from .signing import compute_signature, verify_signature, sign_delivery

__all__ = [
    "WebhookGateway",
    "GatewayResult",
    "PROVIDER_HEADER",
    "signature_header",
    "payload_hash",
    "WebhookDispatcher",
    "compute_signature",
    "verify_signature",
    "sign_delivery",
]
