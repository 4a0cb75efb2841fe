# services/metering/engine.py
"""
Entitlement engine: the one place that decides whether a caller may run a
billable operation, and records that it did.

check_and_consume runs as a single locked read-modify-write per caller record:
  1. load record, apply the day-boundary reset if due
  2. total = daily limit of the plan + bonus balance + bonus drawn today
     (accounts only)
  3. consumed >= total -> Denied, nothing mutated
  4. otherwise consumed += 1; a use past the daily limit draws one unit from
     the lifetime bonus balance. Persist, then append to the ledger (best effort)
Storage failures come back as TransientFailure, never as Denied.

Consumption is charged at admission. A unit is not refunded if the
operation that follows fails or is abandoned.
"""
import logging
from dataclasses import replace
from datetime import timezone

from domain.caller import CallerKey
from domain.policies import (
    ACCOUNT_PLANS,
    UserPlan,
    build_plan_limits,
    daily_limit,
    parse_plan,
    parse_tool,
    upgrade_available,
)
from services.metering.errors import PlanChangeNotAllowed, StorageTransientError
from services.metering.ledger import UsageLogEntry
from services.metering.reset_policy import apply_reset, next_reset_at, should_reset
from services.metering.results import Allowed, Denied, TransientFailure, UsageStatus
from utils.time_utils import local_date, utcnow

logger = logging.getLogger(__name__)


class EntitlementEngine:
    def __init__(self, store, ledger, limits=None, *, tz=timezone.utc, clock=utcnow):
        self.store = store
        self.ledger = ledger
        self.limits = limits if limits is not None else build_plan_limits()
        self.tz = tz
        self.clock = clock

    # -------------------- helpers --------------------
    def _now_and_today(self):
        now = self.clock()
        return now, local_date(now, self.tz)

    def _roll_day(self, record, now, today):
        if should_reset(record.last_reset_date, now, self.tz):
            if apply_reset(record, today):
                logger.debug("[QUOTA] day rollover caller=%s day=%s", record.key, today)

    @staticmethod
    def _effective_plan(caller: CallerKey, record, plan) -> UserPlan:
        if not caller.is_account:
            # anonymous callers cannot claim a tier
            return UserPlan.ANONYMOUS
        return parse_plan(plan) if plan is not None else record.plan

    def _total_available(self, caller, record, plan) -> int:
        total = daily_limit(self.limits, plan)
        if caller.is_account:
            # units drawn today still count toward today's ceiling
            total += record.bonus_balance + record.bonus_used_today
        return total

    def _draw_bonus(self, caller, record, plan):
        if not caller.is_account:
            return
        past_limit = record.daily_consumed - daily_limit(self.limits, plan)
        if past_limit > record.bonus_used_today:
            record.bonus_balance -= 1
            record.bonus_used_today += 1

    def _append_ledger(self, caller, tool, now):
        try:
            self.ledger.append(UsageLogEntry(
                caller_id=caller.value,
                caller_kind=caller.kind,
                tool_type=tool,
                timestamp=now,
            ))
        except Exception:
            # the admission is already committed; the ledger never overrides it
            logger.exception("[LEDGER] append failed caller=%s tool=%s", caller, tool.value)

    @staticmethod
    def _require_account(caller, action):
        if not caller.is_account:
            raise PlanChangeNotAllowed(f"{action} applies to accounts only, got {caller}")

    # -------------------- core --------------------
    def check_and_consume(self, caller: CallerKey, tool, plan=None):
        tool = parse_tool(tool)
        now, today = self._now_and_today()
        try:
            with self.store.transaction(caller, today) as record:
                self._roll_day(record, now, today)
                effective = self._effective_plan(caller, record, plan)
                total = self._total_available(caller, record, effective)

                if record.daily_consumed >= total:
                    decision = Denied(
                        used=record.daily_consumed,
                        limit=total,
                        reset_at=next_reset_at(now, self.tz),
                        upgrade_required=upgrade_available(effective),
                        plan=effective,
                    )
                else:
                    record.daily_consumed += 1
                    self._draw_bonus(caller, record, effective)
                    decision = Allowed(
                        used=record.daily_consumed,
                        limit=total,
                        remaining=total - record.daily_consumed,
                        plan=effective,
                        tool=tool,
                    )
        except StorageTransientError as e:
            logger.warning("[QUOTA] transient failure caller=%s tool=%s err=%s", caller, tool.value, e)
            return TransientFailure(detail=str(e))

        if decision.allowed:
            self._append_ledger(caller, tool, now)
            logger.debug("[QUOTA] allow caller=%s tool=%s used=%s/%s",
                         caller, tool.value, decision.used, decision.limit)
        else:
            logger.info("[QUOTA] deny caller=%s tool=%s used=%s/%s plan=%s",
                        caller, tool.value, decision.used, decision.limit, decision.plan.value)
        return decision

    def usage_status(self, caller: CallerKey, plan=None) -> UsageStatus:
        """
        Read-only as far as consumption goes. Accounts go through the locked
        path so a due day-reset is persisted; anonymous rows are never created
        by a status read. Raises StorageTransientError.
        """
        now, today = self._now_and_today()
        if caller.is_account:
            with self.store.transaction(caller, today) as record:
                self._roll_day(record, now, today)
                snapshot = replace(record)
        else:
            snapshot = self.store.get(caller, today)

        effective = self._effective_plan(caller, snapshot, plan)
        total = self._total_available(caller, snapshot, effective)
        return UsageStatus(
            used=snapshot.daily_consumed,
            limit=total,
            remaining=max(0, total - snapshot.daily_consumed),
            day=today,
            plan=effective,
            reset_at=next_reset_at(now, self.tz),
            bonus_balance=snapshot.bonus_balance if caller.is_account else 0,
        )

    # -------------------- external events --------------------
    def set_plan(self, caller: CallerKey, new_plan) -> UsageStatus:
        """Payment/downgrade event. Takes effect now; daily_consumed is untouched."""
        self._require_account(caller, "set_plan")
        new_plan = parse_plan(new_plan)
        if new_plan not in ACCOUNT_PLANS:
            raise PlanChangeNotAllowed(f"accounts cannot hold plan {new_plan.value}")

        now, today = self._now_and_today()
        with self.store.transaction(caller, today) as record:
            self._roll_day(record, now, today)
            old_plan = record.plan
            record.plan = new_plan
        logger.info("[QUOTA] plan change caller=%s %s -> %s", caller, old_plan.value, new_plan.value)
        return self.usage_status(caller)

    @staticmethod
    def _grant_locked(record, amount) -> bool:
        # a zero grant must not burn the one-time flag
        if record.bonus_granted or amount <= 0:
            return False
        record.bonus_balance += amount
        record.bonus_granted = True
        return True

    def grant_bonus(self, caller: CallerKey, amount: int) -> bool:
        """One-time per account. Returns False when the bonus was already granted."""
        self._require_account(caller, "grant_bonus")
        amount = int(amount)
        if amount < 1:
            raise ValueError("bonus amount must be >= 1")

        now, today = self._now_and_today()
        with self.store.transaction(caller, today) as record:
            self._roll_day(record, now, today)
            granted = self._grant_locked(record, amount)
        if granted:
            logger.info("[QUOTA] bonus granted caller=%s amount=%s", caller, amount)
        else:
            logger.info("[QUOTA] bonus already granted caller=%s (ignored)", caller)
        return granted

    def register_account(self, caller: CallerKey, email=None, bonus: int = 0) -> bool:
        """Signup event: create the record (plan FREE) and grant the signup bonus once."""
        self._require_account(caller, "register_account")
        bonus = int(bonus)
        if bonus < 0:
            raise ValueError("bonus amount must be >= 0")

        now, today = self._now_and_today()
        with self.store.transaction(caller, today) as record:
            self._roll_day(record, now, today)
            if email:
                record.email = email
            granted = self._grant_locked(record, bonus)
        logger.info("[QUOTA] signup caller=%s bonus_granted=%s", caller, granted)
        return granted
