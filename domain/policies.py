# policies.py
from enum import Enum
from types import MappingProxyType

from services.metering.errors import UnknownPlanError


class UserPlan(str, Enum):
    ANONYMOUS = "ANONYMOUS"
    FREE = "FREE"
    PREMIUM = "PREMIUM"


class ToolType(str, Enum):
    ENHANCE = "enhance"
    HUMANIZE = "humanize"
    IMAGE = "image"
    SPEECH = "speech"
    TRANSCRIBE = "transcribe"


# lowest -> highest
PLAN_ORDER = (UserPlan.ANONYMOUS, UserPlan.FREE, UserPlan.PREMIUM)

# plans an authenticated account may hold
ACCOUNT_PLANS = frozenset({UserPlan.FREE, UserPlan.PREMIUM})

DEFAULT_PLAN_LIMITS = {
    UserPlan.ANONYMOUS: 5,
    UserPlan.FREE: 5,
    UserPlan.PREMIUM: 100,
}

_missing = set(UserPlan) - set(DEFAULT_PLAN_LIMITS)
if _missing:
    raise RuntimeError(f"DEFAULT_PLAN_LIMITS has no entry for {sorted(p.value for p in _missing)}")


def parse_plan(value) -> UserPlan:
    if isinstance(value, UserPlan):
        return value
    try:
        return UserPlan(str(value or "").strip().upper())
    except ValueError:
        raise UnknownPlanError(value) from None


def parse_tool(value) -> ToolType:
    if isinstance(value, ToolType):
        return value
    return ToolType(str(value or "").strip().lower())


def build_plan_limits(overrides=None):
    """
    Merge config overrides ({"FREE": 10, ...}) over the defaults.
    Returns a read-only mapping covering every UserPlan.
    """
    limits = dict(DEFAULT_PLAN_LIMITS)
    for name, value in (overrides or {}).items():
        if value is None:
            continue
        plan = parse_plan(name)
        value = int(value)
        if value < 0:
            raise ValueError(f"daily limit for {plan.value} must be >= 0, got {value}")
        limits[plan] = value
    return MappingProxyType(limits)


def daily_limit(limits, plan: UserPlan) -> int:
    return limits[plan]


def upgrade_available(plan: UserPlan) -> bool:
    """True while a higher tier exists (ANONYMOUS -> sign up, FREE -> premium)."""
    return PLAN_ORDER.index(plan) < len(PLAN_ORDER) - 1
