import pytest
from fastapi.testclient import TestClient

from stripe_gateway.config import Settings
from stripe_gateway.database import SessionLocal
from stripe_gateway.main import create_app

TEST_API_KEY = "test-secret-key"
TEST_JWT_SECRET = "test-jwt-secret"
WEBHOOK_SECRET = "whsec_test_fake"
AUTH = {"X-API-Key": TEST_API_KEY}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        stripe_secret_key="sk_test_fake",
        stripe_webhook_secret=WEBHOOK_SECRET,
        service_api_key=TEST_API_KEY,
        jwt_secret=TEST_JWT_SECRET,
        key_service_url="http://key.test",
        key_service_api_key="key-service-key",
        runs_service_url="http://runs.test",
        runs_service_api_key="runs-service-key",
        allowed_origins=[],
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(client):
    # Depends on client so the lifespan has bound the session factory
    session = SessionLocal()
    yield session
    session.close()
