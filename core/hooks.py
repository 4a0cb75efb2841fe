from flask import abort, current_app, g, request

from auth.entitlements import INTERNAL_PATH_PREFIX, authenticated_by_session, load_current_user
from core.extensions import csrf

UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def load_caller():
    load_current_user()
    caller = g.current_caller
    if not caller.trusted:
        current_app.logger.info("[IDENTITY] low-trust caller=%s path=%s", caller, request.path)


def csrf_for_session_callers():
    # bearer and anonymous callers carry no ambient credential; a session cookie does
    if not current_app.config.get("WTF_CSRF_ENABLED", True):
        return
    if request.method not in UNSAFE_METHODS or request.path.startswith(INTERNAL_PATH_PREFIX):
        return
    if authenticated_by_session():
        csrf.protect()


def guard_payload_size():
    if request.content_length and request.content_length > 256 * 1024:
        abort(413)


def register_hooks(app):
    app.before_request(guard_payload_size)
    app.before_request(load_caller)
    app.before_request(csrf_for_session_callers)
