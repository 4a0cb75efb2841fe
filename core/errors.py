from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from services.metering.errors import PlanChangeNotAllowed, StorageTransientError, UnknownPlanError


def register_error_handlers(app):
    """The API answers JSON, including for framework-level errors."""

    @app.errorhandler(HTTPException)
    def _http_error(e):
        # Flask-Limiter raises 429 through here
        return jsonify({"error": e.name.lower().replace(" ", "_"), "message": e.description}), e.code

    @app.errorhandler(StorageTransientError)
    def _storage_unavailable(e):
        current_app.logger.warning("[QUOTA] storage unavailable: %s", e)
        resp = jsonify({"error": "quota_unavailable", "retryable": True})
        resp.status_code = 503
        resp.headers["Retry-After"] = "1"
        return resp

    @app.errorhandler(PlanChangeNotAllowed)
    def _not_allowed(e):
        return jsonify({"error": "not_allowed", "message": str(e)}), 409

    @app.errorhandler(UnknownPlanError)
    def _unknown_plan(e):
        return jsonify({"error": "unknown_plan", "message": str(e)}), 400
