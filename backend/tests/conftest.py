"""Pytest fixtures for StockBridge.

Provides reusable fixtures for:
- An in-memory SQLite database (tables created per test)
- A ServiceContainer wired with in-memory mock providers, a recording
  notifier and an httpx MockTransport standing in for subscriber endpoints
- Seeded warehouses, credentials and an API key
- A FastAPI TestClient authenticated with that key

Usage:
    def test_sync(api_client, connected_mock):
        response = api_client.post("/v1/inventory/sync", json={"providers": ["mock"]})
        assert response.status_code == 200
"""

import os
import sys
from pathlib import Path

# Environment must be set before config/database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-for-unit-tests-only")
os.environ.setdefault("MOCK_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("LOG_JSON", "false")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from auth.api_key import issue_api_key
from config import Settings
from container import ServiceContainer, build_container
from database import get_db as database_get_db
from models import Base, Warehouse, WarehouseStock
from notifications import NotificationRequest, NotificationSender
from providers import InventoryItem, MockProviderClient, ProviderRegistry


SELLER_ID = "seller-1"
OTHER_SELLER_ID = "seller-2"
WEBHOOK_SECRET = "test-webhook-secret"


class RecordingNotifier(NotificationSender):
    """Collects notifications instead of sending them."""

    def __init__(self):
        self.sent: list[NotificationRequest] = []

    def send(self, request: NotificationRequest) -> None:
        self.sent.append(request)

    def types(self) -> list[str]:
        return [n.type for n in self.sent]


class SubscriberEndpoint:
    """httpx MockTransport handler recording subscriber deliveries.

    status_by_url maps a URL to the status code it answers with (default 200);
    raise_by_url maps a URL to an exception raised instead of answering.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_by_url: dict[str, int] = {}
        self.raise_by_url: dict[str, Exception] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) in self.raise_by_url:
            raise self.raise_by_url[str(request.url)]
        return httpx.Response(self.status_by_url.get(str(request.url), 200), json={"ok": True})

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        ENCRYPTION_KEY="test-encryption-key-for-unit-tests-only",
        MOCK_WEBHOOK_SECRET=WEBHOOK_SECRET,
        ENABLED_PROVIDERS="mock,acme",
        BACKOFF_JITTER=0.0,
        WEBHOOK_MAX_ATTEMPTS=3,
        TRANSFER_UNIT_FEE="0.50",
    )


@pytest.fixture
def mock_provider() -> MockProviderClient:
    return MockProviderClient(name="mock", inventory=[
        InventoryItem(sku="SKU-1", quantity=10, available_quantity=8, provider_ref="inv-1", warehouse_ref="MOCK-WH-1"),
        InventoryItem(sku="SKU-2", quantity=5, available_quantity=5, provider_ref="inv-2", warehouse_ref="MOCK-WH-1"),
    ])


@pytest.fixture
def acme_provider() -> MockProviderClient:
    return MockProviderClient(name="acme", inventory=[
        InventoryItem(sku="SKU-1", quantity=3, available_quantity=3, provider_ref="acme-1", warehouse_ref="ACME-WH-1"),
    ])


@pytest.fixture
def registry(mock_provider, acme_provider) -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register("mock", mock_provider)
    registry.register("acme", acme_provider)
    return registry


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def subscriber() -> SubscriberEndpoint:
    return SubscriberEndpoint()


@pytest.fixture
def container(test_settings, session_factory, registry, notifier, subscriber) -> Generator[ServiceContainer, None, None]:
    http_client = httpx.Client(transport=httpx.MockTransport(subscriber))
    container = build_container(
        settings=test_settings,
        session_factory=session_factory,
        http_client=http_client,
        registry=registry,
        notifier=notifier,
        redis_client=None,
    )
    yield container
    container.close()
    http_client.close()


def connect(container: ServiceContainer, db: Session, provider: str, seller_id: str = SELLER_ID, **payload):
    """Store a mock credential for a seller."""
    return container.vault.put(db, seller_id, provider, payload or {"mode": "success"})


@pytest.fixture
def connected_mock(container, db_session):
    return connect(container, db_session, "mock")


@pytest.fixture
def connected_acme(container, db_session):
    return connect(container, db_session, "acme")


def add_warehouse(db: Session, provider: str, provider_ref: str, seller_id: str = SELLER_ID, name: str = None) -> Warehouse:
    warehouse = Warehouse(
        seller_id=seller_id,
        provider_name=provider,
        provider_ref=provider_ref,
        name=name or f"{provider} {provider_ref}",
        active=True,
    )
    db.add(warehouse)
    db.commit()
    return warehouse


def add_stock(db: Session, warehouse: Warehouse, product_id: str, available: int, quantity: int = None) -> WarehouseStock:
    line = WarehouseStock(
        seller_id=warehouse.seller_id,
        warehouse_id=warehouse.id,
        product_id=product_id,
        sku=product_id,
        quantity=quantity if quantity is not None else available,
        available_quantity=available,
    )
    db.add(line)
    db.commit()
    return line


@pytest.fixture
def mock_warehouse(db_session) -> Warehouse:
    return add_warehouse(db_session, "mock", "MOCK-WH-1")


@pytest.fixture
def mock_warehouse_2(db_session) -> Warehouse:
    return add_warehouse(db_session, "mock", "MOCK-WH-2")


@pytest.fixture
def acme_warehouse(db_session) -> Warehouse:
    return add_warehouse(db_session, "acme", "ACME-WH-1")


@pytest.fixture
def api_key(db_session) -> str:
    _, plaintext = issue_api_key(db_session, SELLER_ID, "tests")
    return plaintext


@pytest.fixture
def client(container, db_session):
    """Unauthenticated client sharing the test session and container."""
    from main import create_app

    app = create_app()

    def override_get_db():
        yield db_session

    app.dependency_overrides[database_get_db] = override_get_db
    app.state.container = container
    return TestClient(app)


@pytest.fixture
def api_client(client, api_key):
    """Client authenticated as SELLER_ID."""
    client.headers.update({"X-API-Key": api_key})
    return client
