import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Point the application engine away from the on-disk default before it is built
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CACHE_ENABLED", "false")

from inventory_api.main import app
from inventory_api.database import Base, get_db
from inventory_api.services.product_service import ProductService
from inventory_api.utils.cache import cache_service


# Create test database (SQLite in-memory for testing)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for testing."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# Override the dependency
app.dependency_overrides[get_db] = override_get_db

# Keep tests independent of a running Redis
cache_service.enabled = False


@pytest.fixture(scope="function")
def anon_client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(anon_client):
    """Test client carrying a bearer token of a freshly registered user."""
    response = anon_client.post(
        "/api/auth/register",
        json={"username": "tester", "email": "tester@example.com", "password": "secret123"}
    )
    token = response.json()["token"]
    anon_client.headers.update({"Authorization": f"Bearer {token}"})
    return anon_client


@pytest.fixture(scope="function")
def db_session():
    """Create database session for direct database access in tests."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def create_product(client):
    """Factory creating a product through the API and returning its JSON."""
    def _create(name, **fields):
        payload = {"name": name, "stock": 0}
        payload.update(fields)
        response = client.post("/api/products", json=payload)
        assert response.status_code == 201, response.text
        return response.json()
    return _create


@pytest.fixture
def stale_name_lookup(monkeypatch):
    """Arm the next case-insensitive name lookup to miss, leaving the unique index to catch it."""
    original = ProductService.find_by_name
    armed = []

    def _find_by_name(self, name, exclude_id=None):
        if armed:
            armed.pop()
            return None
        return original(self, name, exclude_id=exclude_id)

    monkeypatch.setattr(ProductService, "find_by_name", _find_by_name)
    return lambda: armed.append(True)
