import logging

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

import routes
from core.config import Config
from core.errors import register_error_handlers
from core.extensions import init_extensions
from core.hooks import register_hooks
from core.metering import init_metering


def create_app(config_overrides=None, engine=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    is_dev = app.config.get("ENV") == "development"
    app.secret_key = app.config.get("SECRET_KEY")
    assert is_dev or (app.secret_key and app.secret_key != "local-dev-secret"), \
        "SECURITY: set SECRET_KEY to a strong value outside development."
    # failing open on storage errors hands out free quota; never in production
    assert is_dev or not app.config.get("QUOTA_FAIL_OPEN"), \
        "QUOTA_FAIL_OPEN is only allowed when FLASK_ENV=development."

    app.config.update(
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=not is_dev,
    )

    hops = int(app.config.get("PROXY_FIX_X_FOR") or 0)
    if hops > 0:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=hops, x_proto=1)

    init_extensions(app)
    init_metering(app, engine=engine)

    routes.register_routes(app)
    register_hooks(app)
    register_error_handlers(app)

    app.logger.info("[DB] backend=%s", app.config.get("QUOTA_BACKEND"))
    return app
