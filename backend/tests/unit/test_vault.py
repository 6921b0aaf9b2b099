"""Unit tests for the credential vault and its AES-GCM cipher"""

from datetime import timedelta

import pytest

from errors import CredentialNotFound, ProviderAuthError, VaultError
from models import ConnectionType, CredentialStatus, ProviderCredential, utcnow
from vault import CredentialCipher, CredentialVault
from vault.encryption import credential_context


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault(CredentialCipher("unit-test-key"))


class TestCredentialCipher:

    def test_round_trip(self):
        cipher = CredentialCipher("k")
        context = credential_context("s1", "shipbob", False)
        sealed = cipher.encrypt_to_json({"access_token": "secret"}, context)
        assert "secret" not in sealed
        assert cipher.decrypt_from_json(sealed, context) == {"access_token": "secret"}

    def test_context_binds_ciphertext_to_row(self):
        cipher = CredentialCipher("k")
        sealed = cipher.encrypt_to_json({"a": 1}, credential_context("s1", "shipbob", False))
        with pytest.raises(VaultError):
            cipher.decrypt_from_json(sealed, credential_context("s2", "shipbob", False))

    def test_wrong_key_fails(self):
        context = credential_context("s1", "mock", False)
        sealed = CredentialCipher("k1").encrypt_to_json({"a": 1}, context)
        with pytest.raises(VaultError):
            CredentialCipher("k2").decrypt_from_json(sealed, context)

    def test_empty_key_rejected(self):
        with pytest.raises(VaultError):
            CredentialCipher("")


class TestCredentialVault:

    def test_put_then_get(self, vault, db_session):
        vault.put(db_session, "s1", "mock", {"api_key": "abc"}, connection_type=ConnectionType.API_KEY)
        credential = vault.get(db_session, "s1", "mock")
        assert credential.payload == {"api_key": "abc"}
        assert credential.for_client()["sandbox"] is False
        assert "abc" not in repr(credential)

    def test_payload_is_encrypted_at_rest(self, vault, db_session):
        vault.put(db_session, "s1", "mock", {"api_key": "plain-secret"})
        row = db_session.query(ProviderCredential).one()
        assert "plain-secret" not in row.encrypted_payload

    def test_put_replaces_existing(self, vault, db_session):
        vault.put(db_session, "s1", "mock", {"v": 1})
        vault.put(db_session, "s1", "mock", {"v": 2})
        assert db_session.query(ProviderCredential).count() == 1
        assert vault.get(db_session, "s1", "mock").payload == {"v": 2}

    def test_live_preferred_over_sandbox(self, vault, db_session):
        vault.put(db_session, "s1", "mock", {"env": "sandbox"}, sandbox=True)
        vault.put(db_session, "s1", "mock", {"env": "live"})
        assert vault.get(db_session, "s1", "mock").payload == {"env": "live"}
        assert vault.get(db_session, "s1", "mock", sandbox=True).payload == {"env": "sandbox"}

    def test_missing_credential(self, vault, db_session):
        with pytest.raises(CredentialNotFound):
            vault.get(db_session, "s1", "mock")

    def test_expired_by_time_requires_reconnect(self, vault, db_session):
        vault.put(db_session, "s1", "mock", {"t": 1}, expires_at=utcnow() - timedelta(minutes=1))
        with pytest.raises(ProviderAuthError):
            vault.get(db_session, "s1", "mock")

    def test_mark_expired(self, vault, db_session):
        vault.put(db_session, "s1", "mock", {"t": 1})
        vault.mark_expired(db_session, "s1", "mock")
        assert vault.find(db_session, "s1", "mock").status == CredentialStatus.EXPIRED.value
        assert vault.is_connected(db_session, "s1", "mock") is False
        with pytest.raises(ProviderAuthError):
            vault.get(db_session, "s1", "mock")

    def test_disconnect_wipes_payload(self, vault, db_session):
        vault.put(db_session, "s1", "mock", {"t": 1})
        vault.put(db_session, "s1", "mock", {"t": 2}, sandbox=True)

        assert vault.disconnect(db_session, "s1", "mock") == 2
        rows = db_session.query(ProviderCredential).all()
        assert all(r.encrypted_payload is None for r in rows)
        assert all(r.status == CredentialStatus.DISCONNECTED.value for r in rows)
        with pytest.raises(CredentialNotFound):
            vault.get(db_session, "s1", "mock")
        with pytest.raises(CredentialNotFound):
            vault.disconnect(db_session, "s1", "mock")

    def test_sellers_are_isolated(self, vault, db_session):
        vault.put(db_session, "s1", "mock", {"owner": "s1"})
        with pytest.raises(CredentialNotFound):
            vault.get(db_session, "s2", "mock")
