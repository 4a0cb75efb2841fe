"""
Pytest configuration and shared fixtures.

- a controllable clock so day rollover can be tested without sleeping
- an engine on the in-memory backend
- Flask apps on the memory backend and on SQLite (SQL backend)
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Environment setup before any app imports
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["RATELIMIT_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from domain.caller import CallerKey  # noqa: E402
from domain.models import db  # noqa: E402
from services.metering.engine import EntitlementEngine  # noqa: E402
from services.metering.ledger import MemoryUsageLedger  # noqa: E402
from services.metering.storage import MemoryQuotaStore  # noqa: E402

INTERNAL_SECRET = "internal-test-secret"

BASE_CONFIG = {
    "TESTING": True,
    "ENV": "testing",
    "SECRET_KEY": "test-secret-key-not-for-production",
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "SQLALCHEMY_ENGINE_OPTIONS": {},
    "RATELIMIT_ENABLED": False,
    "WTF_CSRF_ENABLED": False,
    "INTERNAL_API_SECRET": INTERNAL_SECRET,
    "QUOTA_RETRY_BACKOFF": 0,
    "SIGNUP_BONUS": 10,
}


class FixedClock:
    """Callable clock; tests move it forward explicitly."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryQuotaStore()


@pytest.fixture
def ledger():
    return MemoryUsageLedger()


@pytest.fixture
def engine(store, ledger, clock):
    return EntitlementEngine(store, ledger, tz=timezone.utc, clock=clock)


@pytest.fixture
def account():
    return CallerKey.account("user-123")


@pytest.fixture
def anon():
    return CallerKey.anonymous("8.8.8.8", "header")


def _make_app(clock, **overrides):
    from app import create_app

    app = create_app({**BASE_CONFIG, **overrides})
    app.extensions["metering"].clock = clock
    return app


@pytest.fixture
def app(clock):
    """App on the memory backend."""
    return _make_app(clock, QUOTA_BACKEND="memory")


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sql_app(clock):
    """App on the SQL backend against in-memory SQLite."""
    app = _make_app(clock, QUOTA_BACKEND="sql")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def internal_headers():
    return {"Authorization": f"Bearer {INTERNAL_SECRET}"}


@pytest.fixture
def bearer_for(app):
    """bearer_for("user-1") -> Authorization header signed like the identity provider would."""
    from services.auth_tokens import issue_identity_token

    def _make(user_id, email=None):
        with app.app_context():
            token = issue_identity_token(user_id, email)
        return {"Authorization": f"Bearer {token}"}

    return _make
