"""
ProviderClient - Port interface for fulfillment/warehouse providers

This module defines the abstract interface that every provider integration must
implement. Domain services (orchestrator, transfer saga, webhook gateway) depend
only on this port and on the normalized result types below, never on a
provider's wire format.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from errors import ProviderError


@dataclass
class InventoryItem:
    """
    One inventory line normalized from a provider response.

    Attributes:
        sku: Seller SKU (empty when the provider row carries none)
        quantity: On-hand quantity
        available_quantity: Quantity free to sell or move
        provider_ref: Provider's inventory item id
        warehouse_ref: Provider location id, when the provider reports per location
    """
    sku: str
    quantity: int
    available_quantity: int
    provider_ref: str
    warehouse_ref: Optional[str] = None


@dataclass
class TransferResult:
    """Provider confirmation of a stock move."""
    provider_transaction_id: str
    provider_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class NormalizedEvent:
    """
    Provider webhook normalized into the common event shape.

    event_type uses dotted names: order.created, order.shipped, order.delivered,
    order.cancelled, order.exception, order.paid, inventory.updated.
    """
    event_type: str
    seller_id: str
    data: dict[str, Any]
    order_id: Optional[str] = None
    external_id: Optional[str] = None
    occurred_at: Optional[str] = None


@dataclass
class FulfillmentOrderRequest:
    """Order to be fulfilled by a provider."""
    order_id: str
    items: list[dict[str, Any]]
    shipping_address: dict[str, Any]
    shipping_method: str = "standard"
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class FulfillmentOrderResult:
    provider_order_id: str
    status: str
    tracking_number: Optional[str] = None
    provider_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class TokenSet:
    """Tokens returned by an OAuth code exchange."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "Bearer"
    scope: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Credential payload persisted (encrypted) by the vault."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
            "scope": self.scope,
        }

    def expires_at(self, now: datetime) -> Optional[datetime]:
        if not self.expires_in:
            return None
        return now + timedelta(seconds=int(self.expires_in))


class ProviderClient(ABC):
    """
    Abstract interface for provider integrations.

    Implementations are stateless with respect to sellers: decrypted
    credentials are passed into every call and never stored on the instance.
    All vendor errors are normalized into the errors.ProviderError family
    (ProviderUnavailable, ProviderAuthError, RateLimited, ProviderTransferError,
    MalformedPayload) before they leave the client.

    Implementations:
    - ShipBobClient: ship-from-warehouse provider, OAuth bearer tokens
    - FourPXClient: dropshipping/warehouse provider, API key
    - MockProviderClient: in-memory provider for development and tests
    """

    name: str = ""
    supports_oauth: bool = False

    @abstractmethod
    def get_inventory(
        self,
        credentials: dict[str, Any],
        product_refs: Optional[list[str]] = None,
    ) -> list[InventoryItem]:
        """
        Fetch inventory levels.

        Args:
            credentials: Decrypted credential payload (includes "sandbox")
            product_refs: Provider item ids to fetch; None fetches everything

        Raises:
            ProviderUnavailable: network failure or 5xx
            ProviderAuthError: credential expired or rejected
            RateLimited: provider throttled the call
        """

    @abstractmethod
    def transfer_stock(
        self,
        credentials: dict[str, Any],
        sku: str,
        source_ref: str,
        target_ref: str,
        quantity: int,
    ) -> TransferResult:
        """
        Move stock between two provider locations.

        The quantity must already be validated against local stock.

        Raises:
            ProviderTransferError: provider rejected the move (reason is machine-readable)
        """

    @abstractmethod
    def handle_webhook(self, raw_payload: bytes) -> NormalizedEvent:
        """
        Normalize a verified webhook body. Pure function, no I/O.

        Raises:
            MalformedPayload: body is not JSON or required fields are missing
        """

    @abstractmethod
    def create_fulfillment_order(
        self,
        credentials: dict[str, Any],
        order: FulfillmentOrderRequest,
    ) -> FulfillmentOrderResult:
        """Create a provider-side fulfillment order."""

    def build_authorization_url(
        self,
        state: str,
        redirect_uri: str,
        sandbox: bool,
        client_id: str,
    ) -> str:
        """Authorization URL for the OAuth handshake (OAuth providers only)."""
        raise ProviderError(f"Provider '{self.name}' does not support OAuth", provider=self.name)

    def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        sandbox: bool,
        client_id: str,
        client_secret: str,
    ) -> TokenSet:
        """Exchange an authorization code for tokens (OAuth providers only)."""
        raise ProviderError(f"Provider '{self.name}' does not support OAuth", provider=self.name)

    def required_credential_fields(self) -> list[str]:
        """Fields a manual/API-key connection must supply."""
        return []
