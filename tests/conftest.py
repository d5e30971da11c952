"""Shared test fixtures for the payment core test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: a user with a PENDING Stripe order and a PENDING YuKassa order
- stripe_signature: builds a valid Stripe-Signature header for a raw body
- login: logs the seeded user in through /api/auth/login
"""

import hashlib
import hmac
import time

import pytest
from werkzeug.security import generate_password_hash

from paycore import create_app
from paycore.extensions import db as _db
from paycore.models.order import Order
from paycore.models.user import User

WEBHOOK_SECRET = "whsec_test_fake"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_data(app, db_session):
    """Seed a user and two pending orders.

    Returns plain IDs so tests can use them across app contexts.
    """
    with app.app_context():
        user = User(
            id="user123",
            email="buyer@example.com",
            password_hash=generate_password_hash("buyerpass123"),
            full_name="Test Buyer",
        )
        _db.session.add(user)
        _db.session.flush()

        stripe_order = Order(
            id="order123",
            user_id=user.id,
            amount=1000,
            currency="USD",
            status=Order.STATUS_PENDING,
            payment_provider="stripe",
            external_id="cs_test_123",
            service_id="full_pythagorean",
        )
        yukassa_order = Order(
            id="order456",
            user_id=user.id,
            amount=12345,
            currency="RUB",
            status=Order.STATUS_PENDING,
            payment_provider="yukassa",
            external_id="2d5f8c6e-000f-5000-9000-1b68e7b15f3f",
            service_id="full_pythagorean",
        )
        _db.session.add_all([stripe_order, yukassa_order])
        _db.session.commit()

        return {
            "user_id": user.id,
            "email": user.email,
            "password": "buyerpass123",
            "stripe_order_id": stripe_order.id,
            "yukassa_order_id": yukassa_order.id,
        }


@pytest.fixture
def stripe_signature():
    """Return a function that signs a raw body the way Stripe does."""

    def _sign(payload, timestamp=None, secret=WEBHOOK_SECRET):
        if timestamp is None:
            timestamp = int(time.time())
        signed_payload = f"{timestamp}.{payload}".encode("utf-8")
        digest = hmac.new(
            secret.encode("utf-8"), signed_payload, hashlib.sha256
        ).hexdigest()
        return f"t={timestamp},v1={digest}"

    return _sign


@pytest.fixture
def login(client, seed_data):
    """Log the seeded user in. Returns the user's id."""

    def _login():
        resp = client.post(
            "/api/auth/login",
            json={"email": seed_data["email"], "password": seed_data["password"]},
        )
        assert resp.status_code == 200
        return seed_data["user_id"]

    return _login
