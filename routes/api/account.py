# routes/api/account.py
from flask import Blueprint, current_app, g, jsonify

from auth.guards import require_internal
from core.http_utils import _json_ok
from core.metering import get_engine
from domain.caller import CallerKey
from domain.schema import grant_bonus_schema, set_plan_schema, signup_schema
from security import require_json

api_account_bp = Blueprint("api_account", __name__)


def _account(account_id):
    return CallerKey.account(account_id)


# -------------------------
# plan change (payment provider webhook relay)
# -------------------------
@api_account_bp.route("/internal/accounts/<account_id>/plan", methods=["POST"])
@require_internal
@require_json(set_plan_schema)
def internal_set_plan(account_id):
    status = get_engine().set_plan(_account(account_id), g.safe_input["plan"])
    return _json_ok({"account_id": account_id, "usage": status.to_dict()})


# -------------------------
# signup: create record + one-time signup bonus
# -------------------------
@api_account_bp.route("/internal/accounts/<account_id>/signup", methods=["POST"])
@require_internal
@require_json(signup_schema, allow_empty=True)
def internal_signup(account_id):
    data = g.safe_input
    bonus = data.get("bonus")
    if bonus is None:
        bonus = current_app.config.get("SIGNUP_BONUS", 0)
    granted = get_engine().register_account(_account(account_id), email=data.get("email"), bonus=bonus)
    return _json_ok({"account_id": account_id, "bonus_granted": granted}, status=201 if granted else 200)


# -------------------------
# one-time bonus grant (idempotent)
# -------------------------
@api_account_bp.route("/internal/accounts/<account_id>/bonus", methods=["POST"])
@require_internal
@require_json(grant_bonus_schema)
def internal_grant_bonus(account_id):
    granted = get_engine().grant_bonus(_account(account_id), g.safe_input["amount"])
    return jsonify({"ok": True, "account_id": account_id, "bonus_granted": granted}), 200
