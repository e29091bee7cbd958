import os

# must be set before the application modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FILE"] = ""
os.environ["ENVIRONMENT"] = "test"
os.environ["SMTP_HOST"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fabricpos.database import Base, get_db
from fabricpos.main import app

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

OWNER = {
    "email": "owner@fabricshop.com",
    "username": "asha_owner",
    "password": "Secret@123",
    "first_name": "Asha",
    "last_name": "Verma",
    "organization_name": "Asha Tailors",
}


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def bearer(auth: dict, workspace_id: int = None) -> dict:
    headers = {"Authorization": f"Bearer {auth['tokens']['access_token']}"}
    if workspace_id is not None:
        headers["X-Organization-Id"] = str(workspace_id)
    return headers


@pytest.fixture()
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def owner(client):
    response = client.post("/api/auth/register", json=OWNER)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture()
def workspace_id(owner):
    return owner["workspaces"][0]["id"]


@pytest.fixture()
def auth_headers(owner, workspace_id):
    return bearer(owner, workspace_id)


@pytest.fixture()
def make_member(client, auth_headers, workspace_id):
    """Creates a user in the owner's workspace; returns (headers, user_id)."""
    counter = {"n": 0}

    def _make(role: str = "MEMBER"):
        counter["n"] += 1
        payload = {
            "email": f"staff{counter['n']}@fabricshop.com",
            "username": f"staff_{counter['n']}",
            "password": "Staff@1234",
            "first_name": f"Staff{counter['n']}",
            "role": role,
        }
        created = client.post("/api/users/", json=payload, headers=auth_headers)
        assert created.status_code == 201, created.text
        login = client.post("/api/auth/login", json={"email": payload["email"], "password": payload["password"]})
        assert login.status_code == 200, login.text
        return bearer(login.json()["data"], workspace_id), created.json()["data"]["id"]

    return _make


@pytest.fixture()
def make_product(client, auth_headers):
    counter = {"n": 0}

    def _make(**overrides) -> dict:
        counter["n"] += 1
        payload = {
            "name": f"Cotton Shirt {counter['n']}",
            "sku": f"SKU-{counter['n']:03d}",
            "type": "READY_MADE",
            "base_price": "500.00",
            "cost_price": "300.00",
            "initial_stock": "10",
            "min_stock": "2",
        }
        payload.update(overrides)
        response = client.post("/api/products/", json=payload, headers=auth_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _make


@pytest.fixture()
def make_customer(client, auth_headers):
    counter = {"n": 0}

    def _make(**overrides) -> dict:
        counter["n"] += 1
        payload = {
            "first_name": f"Customer{counter['n']}",
            "last_name": "Kumar",
            "phone": f"98765{counter['n']:05d}",
            "city": "Pune",
        }
        payload.update(overrides)
        response = client.post("/api/customers/", json=payload, headers=auth_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _make
