"""Unit tests for ProviderRegistry"""

import pytest

from errors import UnknownProvider
from providers import MockProviderClient, ProviderRegistry


@pytest.fixture
def providers() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register("mock", MockProviderClient())
    registry.register("acme", MockProviderClient(name="acme"))
    return registry


class TestRegistration:

    def test_get_registered_client(self, providers):
        assert providers.get("mock").name == "mock"
        assert "acme" in providers
        assert providers.list_available() == ["acme", "mock"]

    def test_duplicate_registration_rejected(self, providers):
        with pytest.raises(RuntimeError):
            providers.register("mock", MockProviderClient())

    def test_non_client_rejected(self, providers):
        with pytest.raises(ValueError):
            providers.register("bogus", object())

    def test_unregister(self, providers):
        providers.unregister("acme")
        assert providers.is_registered("acme") is False
        with pytest.raises(UnknownProvider):
            providers.unregister("acme")


class TestValidate:

    def test_validate_dedupes_in_order(self, providers):
        assert providers.validate(["acme", "mock", "acme"]) == ["acme", "mock"]

    def test_validate_names_every_unknown_provider(self, providers):
        with pytest.raises(UnknownProvider) as exc_info:
            providers.validate(["mock", "nope", "other"])
        assert exc_info.value.details["providers"] == ["nope", "other"]

    def test_get_unknown_provider(self, providers):
        with pytest.raises(UnknownProvider):
            providers.get("nope")
