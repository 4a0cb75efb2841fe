# routes/__init__.py
from .api.account import api_account_bp
from .api.health import api_health_bp
from .api.internal_cron import api_internal_cron_bp
from .api.tools import api_tools_bp
from .api.usage import api_usage_bp


def register_routes(app):
    app.register_blueprint(api_health_bp)
    app.register_blueprint(api_usage_bp)
    app.register_blueprint(api_tools_bp)
    app.register_blueprint(api_account_bp)
    app.register_blueprint(api_internal_cron_bp)
