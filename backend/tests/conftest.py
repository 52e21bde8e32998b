"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  (registers tables on Base.metadata)
from api.auth import get_current_user_id
from api.snaptrade import get_broker_client, get_import_service
from database import Base, get_db
from main import app
from services.credential_service import CredentialService
from services.import_service import ImportService
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import TEST_USER_ID, categories, connection  # noqa: F401
from tests.fixtures.mocks import (
    SAMPLE_ACCOUNTS,
    SAMPLE_BALANCES,
    SAMPLE_POSITIONS,
    MockSnapTradeClient,
)


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="mock_snaptrade_client")
def mock_snaptrade_client_fixture():
    """Create a mock SnapTrade client with sample data."""
    return MockSnapTradeClient(
        accounts=SAMPLE_ACCOUNTS,
        positions=SAMPLE_POSITIONS,
        balances=SAMPLE_BALANCES,
    )


@pytest.fixture(name="credential_service")
def credential_service_fixture(mock_snaptrade_client):
    return CredentialService(mock_snaptrade_client)


def _make_client(
    db, broker_client, authenticated: bool = True, raise_server_exceptions: bool = True
) -> TestClient:
    def override_get_db():
        try:
            yield db
        finally:
            pass

    def override_get_broker_client():
        return broker_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_broker_client] = override_get_broker_client
    app.dependency_overrides[get_import_service] = lambda: ImportService(
        CredentialService(broker_client), sleep=lambda seconds: None
    )
    if authenticated:
        app.dependency_overrides[get_current_user_id] = lambda: TEST_USER_ID
    return TestClient(app, raise_server_exceptions=raise_server_exceptions)


@pytest.fixture(name="client")
def client_fixture(db, mock_snaptrade_client):
    """Create an authenticated test client with the test database and mock SnapTrade."""
    client = _make_client(db, mock_snaptrade_client)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="unconfigured_client")
def unconfigured_client_fixture(db):
    """Create a test client whose SnapTrade client has no credentials."""
    client = _make_client(db, MockSnapTradeClient(configured=False))
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="anonymous_client")
def anonymous_client_fixture(db, mock_snaptrade_client):
    """Create a test client that goes through real bearer-token verification."""
    client = _make_client(db, mock_snaptrade_client, authenticated=False)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="make_client")
def make_client_fixture(db):
    """Factory for an authenticated test client around a custom SnapTrade mock."""

    def _factory(broker_client, raise_server_exceptions: bool = True) -> TestClient:
        return _make_client(db, broker_client, raise_server_exceptions=raise_server_exceptions)

    yield _factory
    app.dependency_overrides.clear()
