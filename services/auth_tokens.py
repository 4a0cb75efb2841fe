# Bearer tokens handed out by the identity provider side.
# The metering service only verifies them; whoever signs is the oracle.
from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer


def _identity_serializer():
    cfg = current_app.config
    return URLSafeTimedSerializer(cfg["SECRET_KEY"], salt=cfg.get("IDENTITY_TOKEN_SALT"))


def issue_identity_token(user_id: str, email: str = None) -> str:
    return _identity_serializer().dumps({"uid": user_id, "email": email})


def verify_identity_token(token: str):
    """-> payload dict, or None when the token is missing/forged/expired."""
    if not token:
        return None
    max_age = current_app.config.get("IDENTITY_TOKEN_TTL")
    try:
        payload = _identity_serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("[IDENTITY] expired bearer token")
        return None
    except BadSignature:
        current_app.logger.warning("[IDENTITY] bad bearer token signature")
        return None
    if not isinstance(payload, dict) or not payload.get("uid"):
        return None
    return payload
