"""
Provider Registry - Central registration and resolution of provider clients

The ProviderRegistry maps provider names to constructed ProviderClient
instances. It is built once by the process bootstrap and injected into the
services that need it; unknown names are rejected here, at the boundary,
rather than deep in a call chain.
"""

from typing import Iterable

from errors import UnknownProvider
from .ports import ProviderClient


class ProviderRegistry:
    """
    Registry of provider client instances.

    Usage:
        registry = ProviderRegistry()
        registry.register("shipbob", ShipBobClient(http_client, settings))

        client = registry.get("shipbob")
        items = client.get_inventory(credentials)

    Thread-safety: read operations are thread-safe after bootstrap. Registration
    should happen only while the container is being built.
    """

    def __init__(self) -> None:
        self._clients: dict[str, ProviderClient] = {}

    def register(self, name: str, client: ProviderClient) -> None:
        """
        Register a provider client under a name.

        Raises:
            ValueError: If name is empty or client doesn't implement ProviderClient
            RuntimeError: If name is already registered (prevents accidental override)
        """
        if not name or not name.strip():
            raise ValueError("provider name cannot be empty")

        if not isinstance(client, ProviderClient):
            raise ValueError(
                f"Client must implement ProviderClient, got {type(client).__name__}"
            )

        if name in self._clients:
            raise RuntimeError(
                f"Provider '{name}' is already registered. "
                f"Use unregister() first if you need to replace it."
            )

        self._clients[name] = client

    def get(self, name: str) -> ProviderClient:
        """
        Resolve a provider client by name.

        Raises:
            UnknownProvider: If name is not registered
        """
        if name not in self._clients:
            available = ', '.join(self.list_available()) or 'none'
            raise UnknownProvider(
                f"Unknown provider: '{name}'. Available providers: {available}",
                provider=name,
            )
        return self._clients[name]

    def validate(self, names: Iterable[str]) -> list[str]:
        """
        Check a batch of provider names and return them de-duplicated in order.

        Raises:
            UnknownProvider: naming every unregistered provider in the batch
        """
        ordered: list[str] = []
        unknown: list[str] = []
        for name in names:
            if name in ordered or name in unknown:
                continue
            if name in self._clients:
                ordered.append(name)
            else:
                unknown.append(name)
        if unknown:
            available = ', '.join(self.list_available()) or 'none'
            raise UnknownProvider(
                f"Unknown provider(s): {', '.join(unknown)}. Available providers: {available}",
                providers=unknown,
            )
        return ordered

    def list_available(self) -> list[str]:
        return sorted(self._clients.keys())

    def is_registered(self, name: str) -> bool:
        return name in self._clients

    def unregister(self, name: str) -> None:
        """
        Remove a provider from the registry.

        Raises:
            UnknownProvider: If name is not registered
        """
        if name not in self._clients:
            raise UnknownProvider(f"Provider '{name}' is not registered", provider=name)
        del self._clients[name]

    def __contains__(self, name: str) -> bool:
        return name in self._clients
