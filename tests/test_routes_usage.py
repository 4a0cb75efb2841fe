"""
HTTP surface of the usage API on the memory backend.
"""
from contextlib import contextmanager

import pytest

from app import create_app
from domain.caller import CallerKey

from services.metering.engine import EntitlementEngine
from services.metering.errors import StorageTransientError
from services.metering.ledger import MemoryUsageLedger
from services.metering.storage import MemoryQuotaStore

from conftest import BASE_CONFIG


class DownStore(MemoryQuotaStore):
    """Every locked access fails, reads too."""

    def get(self, caller, today):
        raise StorageTransientError("db down", caller=caller)

    @contextmanager
    def transaction(self, caller, today):
        raise StorageTransientError("db down", caller=caller)
        yield  # pragma: no cover


def _consume(client, tool="enhance", **kw):
    return client.post("/api/usage/consume", json={"tool": tool}, **kw)


class TestUsageStatus:
    def test_anonymous_status(self, client):
        resp = client.get("/api/usage")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["used"] == 0
        assert data["limit"] == 5
        assert data["canUse"] is True
        assert data["date"] == "2026-10-19"
        assert data["identity"] == "anonymous"
        assert "bonusBalance" not in data
        assert "no-store" in resp.headers["Cache-Control"]

    def test_account_status_shows_bonus(self, app, client, bearer_for):
        app.extensions["metering"].grant_bonus(CallerKey.account("user-9"), 10)
        data = client.get("/api/usage", headers=bearer_for("user-9")).get_json()
        assert data["limit"] == 15
        assert data["bonusBalance"] == 10
        assert data["plan"] == "FREE"

    def test_status_never_consumes(self, client):
        for _ in range(3):
            client.get("/api/usage")
        assert client.get("/api/usage").get_json()["used"] == 0


class TestConsume:
    def test_five_then_429(self, client):
        for expected_remaining in (4, 3, 2, 1, 0):
            resp = _consume(client)
            assert resp.status_code == 200
            assert resp.get_json()["remaining"] == expected_remaining

        resp = _consume(client)
        assert resp.status_code == 429
        data = resp.get_json()
        assert data["error"] == "quota_exhausted"
        assert (data["used"], data["limit"]) == (5, 5)
        assert data["upgradeRequired"] is True
        assert data["resetTime"].startswith("2026-10-20T00:00:00")

    def test_tools_share_one_daily_pool(self, client):
        for tool in ("enhance", "humanize", "image", "speech", "transcribe"):
            assert _consume(client, tool).status_code == 200
        assert _consume(client, "enhance").status_code == 429

    def test_forwarded_addresses_get_separate_quotas(self, client):
        a = {"X-Forwarded-For": "8.8.8.8"}
        b = {"X-Forwarded-For": "1.1.1.1"}
        for _ in range(5):
            _consume(client, headers=a)
        assert _consume(client, headers=a).status_code == 429
        assert _consume(client, headers=b).status_code == 200

    def test_next_day_allowed_again(self, client, clock):
        for _ in range(5):
            _consume(client)
        assert _consume(client).status_code == 429
        clock.advance(days=1)
        resp = _consume(client)
        assert resp.status_code == 200
        assert resp.get_json()["used"] == 1

    def test_unknown_tool_rejected(self, client):
        resp = _consume(client, "translate")
        assert resp.status_code == 400

    def test_missing_body_rejected(self, client):
        assert client.post("/api/usage/consume").status_code == 400

    def test_premium_account(self, app, client, bearer_for):
        app.extensions["metering"].set_plan(CallerKey.account("vip"), "PREMIUM")
        data = _consume(client, headers=bearer_for("vip")).get_json()
        assert (data["used"], data["limit"], data["remaining"]) == (1, 100, 99)
        assert data["plan"] == "PREMIUM"


class TestStorageFailure:
    def test_fails_closed_with_503(self, clock):
        engine = EntitlementEngine(DownStore(), MemoryUsageLedger(), clock=clock)
        app = create_app({**BASE_CONFIG, "QUOTA_BACKEND": "memory"}, engine=engine)
        client = app.test_client()

        resp = _consume(client)
        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "1"
        data = resp.get_json()
        assert data["error"] == "quota_unavailable"
        assert data["retryable"] is True
        # never reported as exhausted
        assert "upgradeRequired" not in data

        status = client.get("/api/usage")
        assert status.status_code == 503

    def test_fails_open_only_in_development(self, clock):
        engine = EntitlementEngine(DownStore(), MemoryUsageLedger(), clock=clock)
        app = create_app({**BASE_CONFIG, "ENV": "development", "QUOTA_BACKEND": "memory",
                          "QUOTA_FAIL_OPEN": True}, engine=engine)
        resp = _consume(app.test_client())
        assert resp.status_code == 200
        assert resp.get_json()["degraded"] is True

    def test_fail_open_refused_outside_development(self):
        with pytest.raises(AssertionError):
            create_app({**BASE_CONFIG, "QUOTA_BACKEND": "memory", "QUOTA_FAIL_OPEN": True})

    def test_retry_recovers_from_single_failure(self, app, client):
        engine = app.extensions["metering"]
        original = engine.store.transaction
        calls = {"n": 0}

        def flaky(caller, today):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StorageTransientError("blip")
            return original(caller, today)

        engine.store.transaction = flaky
        resp = _consume(client)
        assert resp.status_code == 200
        assert resp.get_json()["used"] == 1
        assert calls["n"] == 2


class TestHistory:
    def test_requires_account(self, client):
        resp = client.get("/api/usage/history")
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "auth_required"

    def test_lists_entries_and_today_counts(self, client, bearer_for):
        headers = bearer_for("writer")
        _consume(client, "enhance", headers=headers)
        _consume(client, "enhance", headers=headers)
        _consume(client, "image", headers=headers)

        data = client.get("/api/usage/history?limit=2", headers=headers).get_json()
        assert data["date"] == "2026-10-19"
        assert data["today"] == {"enhance": 2, "image": 1}
        assert len(data["entries"]) == 2
        assert data["entries"][0]["tool_type"] == "image"
        assert data["entries"][0]["caller_id"] == "writer"

    def test_bad_limit_rejected(self, client, bearer_for):
        resp = client.get("/api/usage/history?limit=abc", headers=bearer_for("writer"))
        assert resp.status_code == 400


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True}
