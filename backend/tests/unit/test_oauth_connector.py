"""Unit tests for the OAuth authorization-code handshake"""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from conftest import SELLER_ID
from errors import InvalidOrExpiredState, ProviderUnavailable, ValidationFailed
from models import AuditLog, OAuthState, ProviderCredential, utcnow


def state_from(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


@pytest.fixture
def connector(container, db_session):
    return container.oauth_connector(db_session)


class TestBeginConnect:

    def test_issues_state_bound_to_seller(self, connector, db_session):
        url = connector.begin_connect(SELLER_ID, "mock", sandbox=True)

        record = db_session.query(OAuthState).one()
        assert record.state == state_from(url)
        assert record.seller_id == SELLER_ID
        assert record.sandbox is True
        assert record.expires_at > utcnow()

    def test_requires_configured_client(self, connector):
        with pytest.raises(ValidationFailed):
            connector.begin_connect(SELLER_ID, "acme")


class TestCompleteConnect:

    def test_exchanges_code_and_stores_tokens(self, connector, container, db_session):
        state = state_from(connector.begin_connect(SELLER_ID, "mock"))

        result = connector.complete_connect("abc", state)

        assert result.provider == "mock"
        assert result.expires_at is not None
        credential = container.vault.get(db_session, SELLER_ID, "mock")
        assert credential.payload["access_token"] == "mock-access-abc"
        assert credential.connection_type == "oauth"
        assert db_session.query(OAuthState).count() == 0
        assert db_session.query(AuditLog).filter(AuditLog.action == "connection.connected").count() == 1

    def test_state_is_single_use(self, connector, db_session):
        state = state_from(connector.begin_connect(SELLER_ID, "mock"))
        connector.complete_connect("abc", state)

        with pytest.raises(InvalidOrExpiredState):
            connector.complete_connect("abc", state)

        audit = db_session.query(AuditLog).filter(AuditLog.action == "security.invalid_oauth_state").one()
        assert audit.security_event is True

    def test_unknown_state_rejected(self, connector):
        with pytest.raises(InvalidOrExpiredState):
            connector.complete_connect("abc", "forged-state")

    def test_sandbox_mismatch_rejected(self, connector):
        state = state_from(connector.begin_connect(SELLER_ID, "mock", sandbox=False))
        with pytest.raises(InvalidOrExpiredState):
            connector.complete_connect("abc", state, sandbox=True)

    def test_expired_state_rejected(self, connector, db_session):
        state = state_from(connector.begin_connect(SELLER_ID, "mock"))
        record = db_session.query(OAuthState).one()
        record.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        with pytest.raises(InvalidOrExpiredState):
            connector.complete_connect("abc", state)

    def test_failed_exchange_stores_nothing(self, connector, mock_provider, db_session):
        state = state_from(connector.begin_connect(SELLER_ID, "mock"))
        mock_provider.fail_with = ProviderUnavailable("token endpoint down", provider="mock")

        with pytest.raises(ProviderUnavailable):
            connector.complete_connect("abc", state)
        assert db_session.query(ProviderCredential).count() == 0

    def test_purge_expired_states(self, connector, db_session):
        connector.begin_connect(SELLER_ID, "mock")
        assert connector.purge_expired_states(now=utcnow()) == 0
        assert connector.purge_expired_states(now=utcnow() + timedelta(days=2)) == 1
