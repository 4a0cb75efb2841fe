# guards.py
import hmac
from functools import wraps

from flask import current_app, jsonify, request

from auth.entitlements import current_user_id


def require_account(f):
    """401 unless the identity provider vouched for the caller."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not current_user_id():
            return jsonify({"error": "auth_required"}), 401
        return f(*args, **kwargs)
    return wrapper


def require_internal(f):
    """
    Service-to-service endpoints (payment webhook relay, signup hook, cron).
    Authorization: Bearer <INTERNAL_API_SECRET>; an unset secret locks them.
    """
    @wraps(f)
    def wrapper(*args, **kwargs):
        secret = current_app.config.get("INTERNAL_API_SECRET") or ""
        auth = request.headers.get("Authorization", "")
        want = f"Bearer {secret}"
        if not secret or not hmac.compare_digest(auth.encode(), want.encode()):
            current_app.logger.warning("[INTERNAL] forbidden path=%s", request.path)
            return jsonify({"ok": False, "error": "forbidden"}), 403
        return f(*args, **kwargs)
    return wrapper
