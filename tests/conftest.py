"""
Shared pytest fixtures for the ticketgate test suite.
"""

import pytest

from ticketgate import create_app
from ticketgate.models import db
from ticketgate.services import rate_limit
from ticketgate.services.credentials import CredentialIssuer
from ticketgate.services.store import MemoryTicketStore, TicketRecord
from ticketgate.services.validator import EntryValidator

ADMIN_KEY = "test-admin-key"
JWT_KEY = "k" * 64

# aligned to a 30 s step boundary
T0 = 1_700_000_010.0


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def issuer(clock):
    return CredentialIssuer(clock=clock)


@pytest.fixture
def mem_store():
    return MemoryTicketStore()


@pytest.fixture
def validator(mem_store, clock):
    return EntryValidator(mem_store, clock=clock)


@pytest.fixture
def issued(issuer, mem_store):
    """Ticket T1 owned by user-1, stored as valid, with its freshly issued payload."""
    payload, secret = issuer.issue("T1", "user-1")
    mem_store.add(TicketRecord(id="T1", owner_id="user-1", secret=secret, status="valid"))
    return payload, secret


def _make_app(**overrides):
    config = {
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "USE_REDIS": False,
        "ADMIN_API_KEY": ADMIN_KEY,
        "JWT_PUBLIC_KEY": JWT_KEY,
        "JWT_ALG": "HS256",
    }
    config.update(overrides)
    return create_app(config)


@pytest.fixture
def make_app():
    apps = []

    def factory(**overrides):
        rate_limit._set(None)
        app = _make_app(**overrides)
        apps.append(app)
        return app

    yield factory
    for app in apps:
        with app.app_context():
            db.session.remove()
            db.drop_all()
    rate_limit._set(None)


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY, "X-Scanner-Id": "door-1"}
