from flask import Blueprint, current_app, g, jsonify, make_response
from flask_wtf.csrf import generate_csrf

from auth.entitlements import current_caller
from auth.guards import require_account
from auth.quota import consume, decision_response
from core.http_utils import _json_err, no_store
from core.metering import get_engine
from domain.schema import consume_schema, history_query_schema
from security import require_json, safe_args
from services.metering.errors import StorageTransientError
from utils.time_utils import day_window

api_usage_bp = Blueprint("api_usage", __name__)


@api_usage_bp.route("/api/usage", methods=["GET"])
def api_usage_status():
    """
    Quota status for the current caller. Applies a due day-reset,
    never consumes.
    """
    caller = current_caller()
    try:
        status = get_engine().usage_status(caller)
    except StorageTransientError:
        current_app.logger.warning("[USAGE] status unavailable caller=%s", caller)
        return _json_err("quota_unavailable", "usage storage temporarily unavailable", status=503, retryable=True)

    payload = status.to_dict()
    if not caller.is_account:
        payload.pop("bonusBalance", None)
    payload["identity"] = caller.kind
    return no_store(make_response(jsonify(payload), 200))


@api_usage_bp.route("/api/usage/consume", methods=["POST"])
@require_json(consume_schema)
def api_usage_consume():
    """
    200 {used, limit, remaining, canContinue, tool}
    429 {error, used, limit, remaining, resetTime, upgradeRequired}
    503 {error: quota_unavailable, retryable}
    """
    decision = consume(g.safe_input["tool"])
    return decision_response(decision)


@api_usage_bp.route("/api/usage/history", methods=["GET"])
@require_account
def api_usage_history():
    """Ledger view: recent entries plus today's per-tool counts."""
    args = safe_args(history_query_schema)
    limit = min(int(args.get("limit") or 50), 200)

    engine = get_engine()
    caller = current_caller()
    start, end = day_window(engine.clock(), engine.tz)
    return no_store(make_response(jsonify({
        "entries": engine.ledger.recent(caller.value, limit=limit),
        "today": engine.ledger.tool_counts(caller.value, start, end),
        "date": start.date().isoformat(),
    }), 200))


@api_usage_bp.route("/api/csrf-token", methods=["GET"])
def api_csrf_token():
    """Token for cookie-session callers; send it back as X-CSRFToken."""
    return no_store(make_response(jsonify({"csrfToken": generate_csrf()}), 200))
