from functools import wraps

from flask import current_app, g, jsonify, make_response

from auth.entitlements import current_caller
from core.http_utils import no_store
from core.metering import get_engine
from domain.policies import UserPlan, parse_plan, parse_tool
from services.metering.results import Allowed, TransientFailure
from utils.retry import _retry


def consume(tool, plan=None):
    """
    check_and_consume for the current caller with the deployment's failure policy:
    one retry with backoff on a transient storage failure, then fail closed
    (or open, when QUOTA_FAIL_OPEN is set in a development environment).
    """
    cfg = current_app.config
    engine = get_engine()
    caller = current_caller()
    tool = parse_tool(tool)

    decision = _retry(
        lambda: engine.check_and_consume(caller, tool, plan),
        should_retry=lambda d: isinstance(d, TransientFailure),
        tries=2,
        base_delay=cfg.get("QUOTA_RETRY_BACKOFF", 0.2),
    )

    if isinstance(decision, TransientFailure) and cfg.get("QUOTA_FAIL_OPEN"):
        # create_app only lets this through in development
        current_app.logger.warning("[QUOTA] failing OPEN caller=%s tool=%s", caller, tool.value)
        if plan is not None:
            fallback = parse_plan(plan)
        else:
            fallback = UserPlan.FREE if caller.is_account else UserPlan.ANONYMOUS
        return Allowed(used=0, limit=0, remaining=0, plan=fallback, tool=tool, degraded=True)
    return decision


def decision_response(decision):
    if decision.allowed:
        return no_store(make_response(jsonify(decision.to_dict()), 200))
    if isinstance(decision, TransientFailure):
        resp = no_store(make_response(jsonify(decision.to_dict()), 503))
        resp.headers["Retry-After"] = "1"
        return resp
    return no_store(make_response(jsonify(decision.to_dict()), 429))


def enforce_quota(tool=None):
    """
    Gate for server-side billable views: consume first, run the view after.
    The unit stays charged even if the view fails.
    - tool=None: taken from the view's `tool` URL argument
    """
    fixed_tool = parse_tool(tool) if tool is not None else None

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            decision = consume(fixed_tool or kwargs["tool"])
            if not decision.allowed:
                return decision_response(decision)
            g.quota_decision = decision
            return view(*args, **kwargs)
        return wrapper
    return decorator
