"""Pytest configuration and shared fixtures for all tests."""

import os

# Must be set before backoffice.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ.setdefault("SECRET_KEY", "test_secret_key_for_testing_only")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice.database import init_db, ROLE_ADMIN, ROLE_REPRESENTATIVE
from backoffice.main import app, get_db
from backoffice.security import hash_password, failed_attempts
from backoffice.storage import Storage

# Shared by every factory-made user
TEST_PASSWORD = "secret123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return Storage(db)


# =============================================================================
# ENTITY FACTORIES
# =============================================================================

@pytest.fixture
def make_rep(store):
    counter = {"n": 0}

    def _make(name=None, rate="10.00", upline=None, role=ROLE_REPRESENTATIVE, active=True):
        if name is None:
            counter["n"] += 1
            name = f"rep{counter['n']}"
        username = name
        user = store.create_user(
            username=username,
            password=TEST_PASSWORD_HASH,
            email=f"{username}@example.com",
            full_name=username.title(),
            role=role,
            upline_id=upline.id if upline is not None else None,
            commission_rate=rate,
            is_active=active,
        )
        store.commit()
        return user

    return _make


@pytest.fixture
def make_admin(make_rep):
    def _make(name="admin"):
        return make_rep(name=name, rate="0", role=ROLE_ADMIN)
    return _make


@pytest.fixture
def make_product(store):
    counter = {"n": 0}

    def _make(price="100.00", tax_rate="0", stock=50, reorder_level=10, active=True):
        counter["n"] += 1
        product = store.create_product(
            name=f"Product {counter['n']}",
            category="Health",
            base_price=price,
            tax_rate=tax_rate,
            sku=f"SKU-{counter['n']:04d}",
            is_active=active,
        )
        inventory = store.get_inventory_by_product(product.id)
        store.update_inventory(inventory.id, quantity=stock, reorder_level=reorder_level)
        store.commit()
        return product

    return _make


@pytest.fixture
def make_customer(store):
    counter = {"n": 0}

    def _make(rep, discount="0", active=True):
        counter["n"] += 1
        customer = store.create_customer(
            representative_id=rep.id,
            name=f"Customer {counter['n']}",
            email=f"customer{counter['n']}@example.com",
            discount_percentage=discount,
            is_active=active,
        )
        store.commit()
        return customer

    return _make


# =============================================================================
# API FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_lockouts():
    failed_attempts.clear()
    yield
    failed_attempts.clear()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    def _login(username, password=TEST_PASSWORD):
        resp = client.post("/api/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['token']}"}
    return _login


@pytest.fixture
def admin_headers(make_admin, login):
    make_admin()
    return login("admin")
