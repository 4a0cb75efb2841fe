# services/metering/results.py
"""
The three outcomes an entitlement check can have. Presentation decisions
(dialog, toast, redirect) belong to whoever receives these.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from domain.policies import ToolType, UserPlan

QUOTA_EXHAUSTED = "quota_exhausted"
STORAGE_UNAVAILABLE = "storage_unavailable"


@dataclass(frozen=True)
class Allowed:
    used: int
    limit: int
    remaining: int
    plan: UserPlan
    tool: Optional[ToolType] = None
    degraded: bool = False

    allowed = True

    def to_dict(self):
        payload = {
            "allowed": True,
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
            "canContinue": self.remaining > 0,
            "plan": self.plan.value,
            "tool": self.tool.value if self.tool else None,
        }
        if self.degraded:
            payload["degraded"] = True
        return payload


@dataclass(frozen=True)
class Denied:
    used: int
    limit: int
    reset_at: datetime
    upgrade_required: bool
    plan: UserPlan
    reason: str = QUOTA_EXHAUSTED
    remaining: int = 0

    allowed = False

    def to_dict(self):
        return {
            "allowed": False,
            "error": self.reason,
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
            "resetTime": self.reset_at.isoformat(),
            "upgradeRequired": self.upgrade_required,
            "plan": self.plan.value,
        }


@dataclass(frozen=True)
class TransientFailure:
    reason: str = STORAGE_UNAVAILABLE
    retryable: bool = True
    detail: Optional[str] = field(default=None, compare=False)

    allowed = False

    def to_dict(self):
        return {"allowed": False, "error": "quota_unavailable", "reason": self.reason,
                "retryable": self.retryable}


@dataclass(frozen=True)
class UsageStatus:
    used: int
    limit: int
    remaining: int
    day: date
    plan: UserPlan
    reset_at: datetime
    bonus_balance: int = 0

    @property
    def can_use(self) -> bool:
        return self.remaining > 0

    def to_dict(self):
        return {
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
            "date": self.day.isoformat(),
            "canUse": self.can_use,
            "plan": self.plan.value,
            "resetTime": self.reset_at.isoformat(),
            "bonusBalance": self.bonus_balance,
        }
