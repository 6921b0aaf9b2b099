"""SQLAlchemy Models for StockBridge"""

from .base import Base, PortableJSONB, UTCDateTime, utcnow
from .api_key import ApiKey
from .audit_log import AuditLog
from .provider_credential import ProviderCredential, ConnectionType, CredentialStatus
from .oauth_state import OAuthState
from .sync_schedule import SyncSchedule
from .sync_run import SyncRun
from .sync_lock import SyncLock
from .warehouse import Warehouse, WarehouseStock
from .warehouse_transfer import WarehouseTransfer
from .webhook import WebhookEvent, WebhookSubscription, WebhookDelivery, WebhookDeliveryStatus

__all__ = [
    "Base",
    "PortableJSONB",
    "UTCDateTime",
    "utcnow",
    "ApiKey",
    "AuditLog",
    "ProviderCredential",
    "ConnectionType",
    "CredentialStatus",
    "OAuthState",
    "SyncSchedule",
    "SyncRun",
    "SyncLock",
    "Warehouse",
    "WarehouseStock",
    "WarehouseTransfer",
    "WebhookEvent",
    "WebhookSubscription",
    "WebhookDelivery",
    "WebhookDeliveryStatus",
]
