# extensions.py
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFProtect
from domain.models import db


migrate = Migrate()
csrf = CSRFProtect()

# storage/default_limits come from app.config (RATELIMIT_*)
limiter = Limiter(key_func=get_remote_address)

cors = CORS()


def init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)

    # CORS: /api/* only
    cors.init_app(
        app,
        supports_credentials=True,
        resources={
            r"/api/*": {
                "origins": app.config.get("CORS_ORIGINS") or [],
                "methods": ["POST", "GET"],
                "allow_headers": ["Content-Type", "Authorization", "X-CSRFToken"],
            }
        },
    )
