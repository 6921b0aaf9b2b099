"""
Providers module - fulfillment/warehouse provider integration framework

Every external provider is reached through the ProviderClient port. Concrete
clients normalize vendor responses and errors; the ProviderRegistry maps
provider names to client instances and is built once at process bootstrap.
"""

import httpx

from config import Settings
from .ports import (
    ProviderClient,
    InventoryItem,
    TransferResult,
    NormalizedEvent,
    FulfillmentOrderRequest,
    FulfillmentOrderResult,
    TokenSet,
)
from .registry import ProviderRegistry
from .base_client import BaseProviderClient
from .implementations import ShipBobClient, FourPXClient, MockProviderClient


def build_default_registry(http_client: httpx.Client, settings: Settings) -> ProviderRegistry:
    """Register the shipped providers that ENABLED_PROVIDERS turns on."""
    factories = {
        "shipbob": lambda: ShipBobClient(http_client, settings),
        "fourpx": lambda: FourPXClient(http_client, settings),
        "mock": lambda: MockProviderClient(),
    }
    registry = ProviderRegistry()
    for name in settings.enabled_providers:
        if name not in factories:
            raise ValueError(f"ENABLED_PROVIDERS names unknown provider '{name}'")
        registry.register(name, factories[name]())
    return registry


__all__ = [
    "ProviderClient",
    "InventoryItem",
    "TransferResult",
    "NormalizedEvent",
    "FulfillmentOrderRequest",
    "FulfillmentOrderResult",
    "TokenSet",
    "ProviderRegistry",
    "BaseProviderClient",
    "ShipBobClient",
    "FourPXClient",
    "MockProviderClient",
    "build_default_registry",
]
