# services/metering/storage.py
"""
Plan & Quota Table.

A QuotaStore hands out caller records and, through `transaction()`, the one
locked read-modify-write the entitlement engine relies on. The lock is
scoped to a single caller: two requests for the same key serialize, two
requests for different keys never wait on each other.

Backends are picked by config (QUOTA_BACKEND), see `build_store()`.
"""
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from domain.caller import CallerKey
from domain.models import db, Account, AnonymousUsage
from domain.policies import UserPlan, parse_plan
from services.metering.errors import StorageTransientError

logger = logging.getLogger(__name__)


@dataclass
class CallerRecord:
    key: CallerKey
    plan: UserPlan
    bonus_balance: int = 0
    daily_consumed: int = 0
    last_reset_date: Optional[date] = None
    bonus_granted: bool = False
    # bonus units drawn since the last reset; keeps today's ceiling stable
    bonus_used_today: int = 0
    email: Optional[str] = None
    exists: bool = False

    def validate(self):
        if self.daily_consumed < 0:
            raise ValueError(f"daily_consumed must be >= 0 ({self.key})")
        if self.bonus_balance < 0:
            raise ValueError(f"bonus_balance must be >= 0 ({self.key})")
        if self.bonus_used_today < 0:
            raise ValueError(f"bonus_used_today must be >= 0 ({self.key})")
        if not self.key.is_account and (self.bonus_balance or self.bonus_used_today):
            raise ValueError("anonymous callers have no bonus pool")


def default_record(caller: CallerKey, today: date) -> CallerRecord:
    """Zero-initialised record for a caller the store has never seen."""
    plan = UserPlan.FREE if caller.is_account else UserPlan.ANONYMOUS
    return CallerRecord(key=caller, plan=plan, last_reset_date=today)


class QuotaStore(ABC):
    name = "abstract"

    @abstractmethod
    def get(self, caller: CallerKey, today: date) -> CallerRecord:
        """Snapshot of the caller's record; never creates rows."""

    @abstractmethod
    def transaction(self, caller: CallerKey, today: date):
        """
        Context manager yielding a mutable CallerRecord under the caller's lock.
        The record is written back on clean exit and discarded on exception.
        """

    @abstractmethod
    def purge_anonymous(self, before: date) -> int:
        """Drop anonymous rows whose usage_date is older than `before`."""


# =========================
#   In-memory (tests / single-process dev)
# =========================
class _SlotLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class MemoryQuotaStore(QuotaStore):
    name = "memory"

    def __init__(self):
        self._accounts = {}
        self._anonymous = {}
        # slot key -> _SlotLock; anonymous entries are dropped by purge_anonymous
        self._locks = {}
        # only guards the lock registry, never held across a read-modify-write
        self._registry_guard = threading.Lock()

    @staticmethod
    def _lock_key(caller: CallerKey, today: date):
        if caller.is_account:
            return caller.storage_key
        return caller.storage_key, today

    @contextmanager
    def _locked(self, key):
        with self._registry_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _SlotLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._registry_guard:
                entry.users -= 1

    def _slot(self, caller: CallerKey, today: date):
        if caller.is_account:
            return self._accounts, caller.value
        return self._anonymous, (caller.value, today)

    def get(self, caller, today):
        table, k = self._slot(caller, today)
        current = table.get(k)
        return replace(current) if current else default_record(caller, today)

    @contextmanager
    def transaction(self, caller, today) -> Iterator[CallerRecord]:
        with self._locked(self._lock_key(caller, today)):
            table, k = self._slot(caller, today)
            current = table.get(k)
            working = replace(current) if current else default_record(caller, today)
            yield working
            working.validate()
            working.exists = True
            table[k] = working

    def purge_anonymous(self, before):
        stale = [k for k in list(self._anonymous) if k[1] < before]
        for k in stale:
            self._anonymous.pop(k, None)
        with self._registry_guard:
            idle = [k for k, entry in self._locks.items()
                    if isinstance(k, tuple) and k[1] < before and entry.users == 0]
            for k in idle:
                del self._locks[k]
        return len(stale)


# =========================
#   SQL (production): row lock via SELECT ... FOR UPDATE
# =========================
@contextmanager
def begin_tx():
    s = db.session()
    if s.in_transaction():
        with s.begin_nested():
            yield
    else:
        with s.begin():
            yield


class SqlQuotaStore(QuotaStore):
    name = "sql"

    # ---- row <-> record ----
    @staticmethod
    def _from_account(caller, row, today):
        if row is None:
            return default_record(caller, today)
        return CallerRecord(
            key=caller,
            plan=parse_plan(row.plan),
            bonus_balance=row.bonus_balance or 0,
            daily_consumed=row.daily_consumed or 0,
            last_reset_date=row.last_reset_date,
            bonus_granted=bool(row.bonus_granted),
            bonus_used_today=row.bonus_used_today or 0,
            email=row.email,
            exists=True,
        )

    @staticmethod
    def _from_anonymous(caller, row, today):
        if row is None:
            return default_record(caller, today)
        return CallerRecord(
            key=caller,
            plan=UserPlan.ANONYMOUS,
            daily_consumed=row.usage_count or 0,
            last_reset_date=row.usage_date,
            exists=True,
        )

    @staticmethod
    def _write(row, record: CallerRecord):
        record.validate()
        if isinstance(row, Account):
            row.plan = record.plan.value
            row.bonus_balance = record.bonus_balance
            row.bonus_granted = record.bonus_granted
            row.bonus_used_today = record.bonus_used_today
            row.daily_consumed = record.daily_consumed
            row.last_reset_date = record.last_reset_date
            if record.email:
                row.email = record.email
        else:
            row.usage_count = record.daily_consumed

    # ---- locked lookups ----
    @staticmethod
    def _locked_account(caller, today):
        q = Account.query.filter(Account.id == caller.value).with_for_update(nowait=False)
        row = q.first()
        if row is not None:
            return row
        try:
            with db.session.begin_nested():
                row = Account(id=caller.value, plan=UserPlan.FREE.value, bonus_balance=0,
                              bonus_used_today=0, daily_consumed=0, last_reset_date=today)
                db.session.add(row)
            return row
        except IntegrityError:
            # lost the insert race; the winner's row exists now
            return q.one()

    @staticmethod
    def _locked_anonymous(caller, today):
        q = (AnonymousUsage.query
             .filter(AnonymousUsage.ip_address == caller.value,
                     AnonymousUsage.usage_date == today)
             .with_for_update(nowait=False))
        row = q.first()
        if row is not None:
            return row
        try:
            with db.session.begin_nested():
                row = AnonymousUsage(ip_address=caller.value, usage_date=today, usage_count=0)
                db.session.add(row)
            return row
        except IntegrityError:
            return q.one()

    # ---- QuotaStore ----
    def get(self, caller, today):
        try:
            if caller.is_account:
                return self._from_account(caller, db.session.get(Account, caller.value), today)
            row = AnonymousUsage.query.filter_by(ip_address=caller.value, usage_date=today).first()
            return self._from_anonymous(caller, row, today)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageTransientError(f"read failed: {e.__class__.__name__}", caller=caller) from e

    @contextmanager
    def transaction(self, caller, today) -> Iterator[CallerRecord]:
        try:
            with begin_tx():
                if caller.is_account:
                    row = self._locked_account(caller, today)
                    record = self._from_account(caller, row, today)
                else:
                    row = self._locked_anonymous(caller, today)
                    record = self._from_anonymous(caller, row, today)
                yield record
                self._write(row, record)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning("[QUOTA] storage failure caller=%s err=%r", caller, e)
            raise StorageTransientError(f"transaction failed: {e.__class__.__name__}", caller=caller) from e

    def purge_anonymous(self, before):
        try:
            n = (AnonymousUsage.query
                 .filter(AnonymousUsage.usage_date < before)
                 .delete(synchronize_session=False))
            db.session.commit()
            return n
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageTransientError(f"purge failed: {e.__class__.__name__}") from e


def build_store(backend: str) -> QuotaStore:
    backend = (backend or "sql").strip().lower()
    if backend == "sql":
        return SqlQuotaStore()
    if backend == "memory":
        return MemoryQuotaStore()
    raise ValueError(f"unknown QUOTA_BACKEND: {backend!r}")
