"""Fulfillment orchestration: multi-provider inventory sync and order fulfillment."""

from .orchestrator import (
    FulfillmentOrchestrator,
    SyncOptions,
    SyncRunResult,
    ProviderSyncResult,
)
from .limiter import ProviderConcurrencyLimiter
from .inventory_mirror import apply_inventory, provider_refs_for, MirrorResult

__all__ = [
    "FulfillmentOrchestrator",
    "SyncOptions",
    "SyncRunResult",
    "ProviderSyncResult",
    "ProviderConcurrencyLimiter",
    "apply_inventory",
    "provider_refs_for",
    "MirrorResult",
]
