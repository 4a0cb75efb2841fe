import os

from dotenv import load_dotenv

load_dotenv()


def _csv(v: str):
    return [x.strip() for x in (v or "").split(",") if x.strip()]


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default=None):
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    return int(v)


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "local-dev-secret")

    ENV = os.getenv("FLASK_ENV", "production")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # DB
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///metering.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 280,
    }

    # -------------------------
    # Metering
    # -------------------------
    # sql | memory (memory = single process, tests/dev only)
    QUOTA_BACKEND = os.getenv("QUOTA_BACKEND", "sql").strip().lower()
    # calendar day boundary; must be identical on every instance
    QUOTA_TIMEZONE = os.getenv("QUOTA_TIMEZONE", "UTC")

    PLAN_LIMITS = {
        "ANONYMOUS": _env_int("PLAN_LIMITS_ANONYMOUS", 5),
        "FREE": _env_int("PLAN_LIMITS_FREE", 5),
        "PREMIUM": _env_int("PLAN_LIMITS_PREMIUM", 100),
    }
    SIGNUP_BONUS = _env_int("SIGNUP_BONUS", 10)

    # storage failure policy: retry once, then fail closed unless explicitly opened (dev only)
    QUOTA_RETRY_BACKOFF = float(os.getenv("QUOTA_RETRY_BACKOFF", "0.2"))
    QUOTA_FAIL_OPEN = _env_bool("QUOTA_FAIL_OPEN", default=False)

    # -------------------------
    # Identity
    # -------------------------
    TRUSTED_IP_HEADERS = _csv(os.getenv("TRUSTED_IP_HEADERS", "X-Forwarded-For,X-Real-IP,Client-IP"))
    # >0 wraps the app in werkzeug ProxyFix with that many hops
    PROXY_FIX_X_FOR = _env_int("PROXY_FIX_X_FOR", 0)
    IDENTITY_TOKEN_SALT = os.getenv("IDENTITY_TOKEN_SALT", "identity-token-v1")
    IDENTITY_TOKEN_TTL = _env_int("IDENTITY_TOKEN_TTL", 60 * 60 * 24)

    # -------------------------
    # Internal endpoints (payment webhook, signup hook, cron)
    # -------------------------
    INTERNAL_API_SECRET = os.getenv("INTERNAL_API_SECRET", "")

    # -------------------------
    # Housekeeping
    # -------------------------
    ANON_RETENTION_DAYS = _env_int("ANON_RETENTION_DAYS", 7)
    CLEANUP_POLL_SECONDS = _env_int("CLEANUP_POLL_SECONDS", 3600)

    # -------------------------
    # CORS / Origin allowlist
    # -------------------------
    CORS_ORIGINS = _csv(os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"))

    # -------------------------
    # Request throttling (Flask-Limiter): coarse abuse guard, not the quota
    # -------------------------
    REDIS_URL = os.getenv("REDIS_URL", "")
    RATELIMIT_STORAGE_URI = REDIS_URL if REDIS_URL else "memory://"
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "300 per hour")
    RATELIMIT_ENABLED = _env_bool("RATELIMIT_ENABLED", default=True)

    MAX_CONTENT_LENGTH = 256 * 1024

    # -------------------------
    # CSRF (Flask-WTF): enforced by core/hooks.py for cookie-session callers only
    # -------------------------
    WTF_CSRF_CHECK_DEFAULT = False
    WTF_CSRF_HEADERS = ["X-CSRFToken", "X-CSRF-Token"]
