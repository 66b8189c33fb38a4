"""Shared pytest fixtures for the storefront tests."""

import os

# keep hashing fast and never reach for a real database
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("DATABASE_URL", None)

import pytest
from fastapi.testclient import TestClient

from auth import ROLE_OWNER, ROLE_USER, create_token, hash_password
from main import app
from schemas import Owner, Product, User
from stores import get_stores, memory_stores


@pytest.fixture
def stores():
    """Fresh in-memory stores for each test."""
    return memory_stores()


@pytest.fixture
def client(stores):
    """Return a test client wired to the in-memory stores."""
    app.dependency_overrides[get_stores] = lambda: stores
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_product(stores):
    """Create products in the catalog store."""
    def _make(name="Widget", price=100.0, discount=0, **extra):
        return stores.catalog.create(Product(name=name, price=price, discount=discount, **extra))
    return _make


@pytest.fixture
def user(stores):
    """Create a registered shopper."""
    return stores.users.create(User(
        email="shopper@example.com",
        password=hash_password("testpass123"),
        fullname="Test Shopper",
    ))


@pytest.fixture
def user_headers(user):
    return {"Authorization": f"Bearer {create_token(user.email, ROLE_USER)}"}


@pytest.fixture
def owner(stores):
    """Create a store owner."""
    return stores.owners.create(Owner(
        email="owner@example.com",
        password=hash_password("ownerpass123"),
        fullname="Shop Owner",
    ))


@pytest.fixture
def owner_headers(owner):
    return {"Authorization": f"Bearer {create_token(owner.email, ROLE_OWNER)}"}
