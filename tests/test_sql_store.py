"""
SQL backend against in-memory SQLite. SQLite ignores FOR UPDATE, so these
cover the row mapping and the transaction/rollback paths, not lock contention.
"""
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query

from domain.caller import CallerKey
from domain.models import Account, AnonymousUsage, UsageLog, db
from services.metering.errors import StorageTransientError
from services.metering.results import Allowed, Denied, TransientFailure
from services.metering.storage import SqlQuotaStore


@pytest.fixture
def sql_engine(sql_app):
    return sql_app.extensions["metering"]


class TestAccounts:
    def test_first_consume_creates_free_account(self, sql_engine, account):
        d = sql_engine.check_and_consume(account, "enhance")
        assert isinstance(d, Allowed) and d.used == 1

        row = db.session.get(Account, account.value)
        assert row.plan == "FREE"
        assert row.daily_consumed == 1
        assert row.last_reset_date == date(2026, 10, 19)

    def test_exhaustion_and_rollover(self, sql_engine, account, clock):
        for _ in range(5):
            assert sql_engine.check_and_consume(account, "image").allowed
        d = sql_engine.check_and_consume(account, "image")
        assert isinstance(d, Denied) and d.used == 5

        clock.advance(days=1)
        d = sql_engine.check_and_consume(account, "image")
        assert d.allowed and d.used == 1
        assert db.session.get(Account, account.value).last_reset_date == date(2026, 10, 20)

    def test_bonus_and_plan_persist(self, sql_engine, account):
        assert sql_engine.register_account(account, email="u@example.com", bonus=10) is True
        assert sql_engine.grant_bonus(account, 10) is False
        status = sql_engine.set_plan(account, "PREMIUM")
        assert status.limit == 110

        row = db.session.get(Account, account.value)
        assert (row.plan, row.bonus_balance, row.bonus_granted, row.email) == \
            ("PREMIUM", 10, True, "u@example.com")

    def test_bonus_drawn_down_across_days(self, sql_engine, account, clock):
        sql_engine.register_account(account, bonus=10)
        day_one = [sql_engine.check_and_consume(account, "enhance") for _ in range(16)]
        assert sum(d.allowed for d in day_one) == 15
        row = db.session.get(Account, account.value)
        assert (row.bonus_balance, row.bonus_used_today) == (0, 10)

        clock.advance(days=1)
        day_two = [sql_engine.check_and_consume(account, "enhance") for _ in range(6)]
        assert [d.allowed for d in day_two] == [True] * 5 + [False]
        row = db.session.get(Account, account.value)
        assert (row.daily_consumed, row.bonus_used_today) == (5, 0)


class TestAnonymous:
    def test_one_row_per_ip_per_day(self, sql_engine, anon, clock):
        for _ in range(3):
            sql_engine.check_and_consume(anon, "speech")
        clock.advance(days=1)
        sql_engine.check_and_consume(anon, "speech")

        rows = AnonymousUsage.query.filter_by(ip_address="8.8.8.8").order_by(AnonymousUsage.usage_date).all()
        assert [(r.usage_date, r.usage_count) for r in rows] == [
            (date(2026, 10, 19), 3),
            (date(2026, 10, 20), 1),
        ]

    def test_status_read_creates_no_row(self, sql_engine, anon):
        assert sql_engine.usage_status(anon).used == 0
        assert AnonymousUsage.query.count() == 0

    def test_purge_old_rows(self, sql_engine, anon, clock):
        sql_engine.check_and_consume(anon, "speech")
        clock.advance(days=10)
        sql_engine.check_and_consume(anon, "speech")

        purged = sql_engine.store.purge_anonymous(date(2026, 10, 25))
        assert purged == 1
        assert [r.usage_date for r in AnonymousUsage.query.all()] == [date(2026, 10, 29)]


class TestLedger:
    def test_admitted_calls_are_logged(self, sql_engine, account, clock):
        sql_engine.check_and_consume(account, "enhance")
        sql_engine.check_and_consume(account, "image")
        assert UsageLog.query.count() == 2

        recent = sql_engine.ledger.recent(account.value, limit=10)
        assert {e["tool_type"] for e in recent} == {"enhance", "image"}

        start = clock.now.replace(hour=0)
        end = clock.advance(days=1)
        assert sql_engine.ledger.tool_counts(account.value, start, end) == {"enhance": 1, "image": 1}


class TestInsertRace:
    """
    Another request inserts the row between our empty locked read and our
    insert. The unique key rejects ours and we continue on the winner's row.
    """

    @staticmethod
    def _lose_race(monkeypatch, insert_competitor):
        original = Query.first
        calls = {"n": 0}

        def first(self):
            calls["n"] += 1
            if calls["n"] == 1:
                db.session.execute(insert_competitor)
                return None
            return original(self)

        monkeypatch.setattr(Query, "first", first)
        return calls

    def test_account_row_created_concurrently(self, sql_engine, account, monkeypatch):
        calls = self._lose_race(monkeypatch, Account.__table__.insert().values(
            id=account.value, plan="FREE", daily_consumed=3, last_reset_date=date(2026, 10, 19)))

        d = sql_engine.check_and_consume(account, "enhance")
        assert calls["n"] == 1
        assert isinstance(d, Allowed) and d.used == 4
        assert Account.query.count() == 1
        assert db.session.get(Account, account.value).daily_consumed == 4

    def test_anonymous_row_created_concurrently(self, sql_engine, anon, monkeypatch):
        self._lose_race(monkeypatch, AnonymousUsage.__table__.insert().values(
            ip_address=anon.value, usage_date=date(2026, 10, 19), usage_count=2))

        d = sql_engine.check_and_consume(anon, "enhance")
        assert isinstance(d, Allowed) and d.used == 3
        rows = AnonymousUsage.query.all()
        assert [(r.ip_address, r.usage_count) for r in rows] == [("8.8.8.8", 3)]


class TestTransientFailures:
    def test_lock_failure_is_transient_not_denied(self, sql_engine, account, monkeypatch):
        def boom(caller, today):
            raise OperationalError("SELECT ... FOR UPDATE", {}, Exception("lock wait timeout"))

        monkeypatch.setattr(SqlQuotaStore, "_locked_account", staticmethod(boom))
        d = sql_engine.check_and_consume(account, "enhance")
        assert isinstance(d, TransientFailure)
        assert d.retryable is True
        assert UsageLog.query.count() == 0

        with pytest.raises(StorageTransientError):
            sql_engine.usage_status(account)

    def test_session_usable_after_failure(self, sql_engine, account, monkeypatch):
        def boom(caller, today):
            raise OperationalError("SELECT", {}, Exception("connection dropped"))

        with monkeypatch.context() as m:
            m.setattr(SqlQuotaStore, "_locked_account", staticmethod(boom))
            sql_engine.check_and_consume(account, "enhance")

        d = sql_engine.check_and_consume(account, "enhance")
        assert d.allowed and d.used == 1


def test_http_flow_on_sql_backend(sql_app):
    client = sql_app.test_client()
    headers = {"X-Forwarded-For": "9.9.9.9"}
    codes = [client.post("/api/usage/consume", json={"tool": "humanize"}, headers=headers).status_code
             for _ in range(6)]
    assert codes == [200] * 5 + [429]
    assert client.get("/api/usage", headers=headers).get_json()["used"] == 5


def test_account_and_anonymous_keys_are_separate(sql_engine):
    ip_as_account = CallerKey.account("8.8.8.8")
    ip_as_anon = CallerKey.anonymous("8.8.8.8", "header")
    for _ in range(5):
        sql_engine.check_and_consume(ip_as_anon, "enhance")
    assert sql_engine.check_and_consume(ip_as_account, "enhance").allowed
