"""Shared pytest fixtures for the storefront tests."""

import json
from datetime import datetime, timedelta, timezone
from urllib.parse import quote

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import PRODUCTS, create_document, get_db
from errors import ExternalServiceError, StorageError
from main import app
from payments import PaymentSession, get_payment_gateway
from storage import get_storage


class FakeStorage:
    """In-memory object storage with the same interface as GridFSStorage."""

    def __init__(self):
        self.objects = {}
        self.removed = []
        self.failing_removals = set()

    def upload(self, path, data, content_type=None):
        self.objects[path] = (data, content_type or "application/octet-stream")
        return path

    def get_public_url(self, path):
        return f"http://testserver/media/products/{path}"

    def remove(self, path):
        self.removed.append(path)
        if path in self.failing_removals:
            raise StorageError(f"Removal of {path} failed")
        if path not in self.objects:
            raise StorageError(f"Object {path} not found")
        del self.objects[path]

    def open(self, path):
        if path not in self.objects:
            raise StorageError(f"Object {path} not found")
        return self.objects[path]


class FakeGateway:
    """Records payment session requests instead of calling Stripe."""

    currency = "gbp"

    def __init__(self, fail=False):
        self.fail = fail
        self.sessions = []

    def create_session(self, **kwargs):
        if self.fail:
            raise ExternalServiceError("Failed to create checkout session")
        session = PaymentSession(
            id=f"cs_test_{len(self.sessions) + 1}",
            url=f"https://checkout.stripe.test/pay/cs_test_{len(self.sessions) + 1}",
        )
        self.sessions.append(kwargs)
        return session


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    return mongomock.MongoClient().storefront


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, storage, gateway):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_product(db):
    """Insert a product and return its id."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "name": f"Product {counter['n']}",
            "description": "Sterling silver",
            "price": 25.0,
            "quantity": 10,
            "category": "Ring",
            "images": [f"http://testserver/media/products/img{counter['n']}.png"],
            "reviews": [],
            "featured": False,
            "created_at": base + timedelta(days=counter["n"]),
        }
        data.update(overrides)
        return create_document(db, PRODUCTS, data)

    return _make


@pytest.fixture
def set_cart(client):
    """Write a raw cart cookie on the test client."""

    def _set(entries):
        value = entries if isinstance(entries, str) else json.dumps(entries)
        client.cookies.set("cart", quote(value, safe=""))

    return _set
