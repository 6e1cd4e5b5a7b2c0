"""
Pytest fixtures for stockledger backend tests.

Every app-level fixture is parametrized over both entity stores, so each
test that uses it runs once against the relational store (in-memory
SQLite) and once against the in-process store.
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.services.ledger_service import LedgerEngine
from stockledger.storage import STORE_EXTENSION_KEY


ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "Admin123!"
USER_PASSWORD = "Password123!"


def make_app(store_kind: str, **overrides):
    config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'INVENTORY_STORE': store_kind,
        'BCRYPT_ROUNDS': 4,
        'BOOTSTRAP_ADMIN_USERNAME': ADMIN_USERNAME,
        'BOOTSTRAP_ADMIN_PASSWORD': ADMIN_PASSWORD,
        'LOG_LEVEL': 'WARNING',
    }
    config.update(overrides)
    return create_app(config)


@pytest.fixture(params=["sql", "memory"])
def app(request):
    """Create application for testing (fresh store per test)."""
    app = make_app(request.param)

    with app.app_context():
        yield app
        db.session.remove()
        if request.param == "sql":
            db.drop_all()


@pytest.fixture
def store(app):
    return app.extensions[STORE_EXTENSION_KEY]


@pytest.fixture
def ledger(store):
    return LedgerEngine(store)


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


def login(client, username, password):
    resp = client.post("/api/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return {"Authorization": f"Bearer {resp.get_json()['token']}"}


@pytest.fixture
def admin_headers(client):
    return login(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
def make_user(client, admin_headers):
    """Create an account through the API and return (user_json, headers)."""
    def _make(username, **flags):
        resp = client.post(
            "/api/users",
            json={"username": username, "password": USER_PASSWORD, **flags},
            headers=admin_headers,
        )
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json(), login(client, username, USER_PASSWORD)

    return _make


@pytest.fixture
def clerk_headers(make_user):
    """Account that may record movements but nothing else."""
    _user, headers = make_user("clerk", can_manage_inventory=True)
    return headers


@pytest.fixture
def viewer_headers(make_user):
    """Account with no capabilities at all."""
    _user, headers = make_user("viewer")
    return headers


@pytest.fixture
def product(client, admin_headers):
    resp = client.post("/api/products", json={"name": "Flour", "category": "BAKERY"}, headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()
