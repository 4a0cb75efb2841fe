from typing import Optional

from flask import g, request, session

from auth.identity import resolve_caller
from domain.caller import CallerKey
from services.auth_tokens import verify_identity_token

# service-to-service routes; their bearer is INTERNAL_API_SECRET, not an identity token
INTERNAL_PATH_PREFIX = "/internal/"


# Runs once per request (core/hooks.py) and parks the verified account id on g.
# Everything downstream reads it through current_user_id() / current_caller().
def load_current_user():
    uid = None
    source = None

    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer ") and not request.path.startswith(INTERNAL_PATH_PREFIX):
        payload = verify_identity_token(auth[len("Bearer "):].strip())
        if payload:
            uid = payload["uid"]
            source = "bearer"

    if not uid:
        sess = session.get("user") or {}
        uid = sess.get("user_id")
        if uid:
            source = "session"

    g.current_user_id = uid or None
    # "bearer" | "session" | None; session callers ride on an ambient cookie
    g.auth_source = source
    g.current_caller = resolve_caller(request, g.current_user_id)
    return g.current_user_id


def current_user_id() -> Optional[str]:
    return getattr(g, "current_user_id", None)


def current_caller() -> CallerKey:
    caller = getattr(g, "current_caller", None)
    if caller is None:
        load_current_user()
        caller = g.current_caller
    return caller


def authenticated_by_session() -> bool:
    return getattr(g, "auth_source", None) == "session"
