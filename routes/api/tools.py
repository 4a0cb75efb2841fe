# -------------------- billable tools --------------------
from functools import wraps

from flask import Blueprint, g, jsonify

from auth.quota import enforce_quota
from core.extensions import limiter
from domain.policies import parse_tool
from domain.schema import tool_call_schema
from security import require_json
from services.ai.router import ProviderFailed, has_provider, run_tool

api_tools_bp = Blueprint("api_tools", __name__)


def require_provider(f):
    """404 for unknown tools, 501 when no provider is wired; both before any charge."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            tool = parse_tool(kwargs.get("tool"))
        except ValueError:
            return jsonify({"error": "unknown_tool"}), 404
        if not has_provider(tool):
            return jsonify({"error": "provider_not_configured", "tool": tool.value}), 501
        return f(*args, **kwargs)
    return wrapper


@api_tools_bp.route("/api/tools/<tool>", methods=["POST"])
@limiter.limit("60/minute")
@require_provider
@require_json(tool_call_schema, allow_empty=True)
@enforce_quota()
def api_tool_call(tool):
    decision = g.quota_decision
    quota = {k: v for k, v in decision.to_dict().items() if k != "allowed"}
    try:
        result = run_tool(tool, g.safe_input)
    except ProviderFailed:
        # admission already charged; no refund
        return jsonify({"error": "provider_failed", "tool": tool, "quota": quota}), 502
    return jsonify({"result": result, "tool": tool, "quota": quota}), 200
