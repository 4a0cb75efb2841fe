from flask import Blueprint, jsonify

from auth.guards import require_internal
from worker.anon_cleanup import run_once

api_internal_cron_bp = Blueprint("internal_cron", __name__)


# ---- anonymous usage retention, called by an external scheduler ----
@api_internal_cron_bp.route("/internal/cron/purge-anonymous", methods=["POST"])
@require_internal
def cron_purge_anonymous():
    """
    Housekeeping only: stale anonymous rows are never read by the engine,
    they just take up space.
    """
    result = run_once()
    return jsonify({"ok": True, **result}), 200
