"""
Provider implementations

This package contains concrete implementations of ProviderClient.
Each client handles one external fulfillment/warehouse provider.
"""

from .shipbob import ShipBobClient
from .fourpx import FourPXClient
from .mock_provider import MockProviderClient

__all__ = ["ShipBobClient", "FourPXClient", "MockProviderClient"]
