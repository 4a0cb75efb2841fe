# core/metering.py
from flask import current_app

from domain.policies import build_plan_limits
from services.metering.engine import EntitlementEngine
from services.metering.ledger import build_ledger
from services.metering.storage import build_store
from utils.time_utils import resolve_tz

EXTENSION_KEY = "metering"


def init_metering(app, engine=None):
    """
    Wire the entitlement engine from config. Backend selection lives here,
    never inside the engine.
    """
    if engine is None:
        cfg = app.config
        backend = cfg.get("QUOTA_BACKEND", "sql")
        engine = EntitlementEngine(
            store=build_store(backend),
            ledger=build_ledger(backend),
            limits=build_plan_limits(cfg.get("PLAN_LIMITS")),
            tz=resolve_tz(cfg.get("QUOTA_TIMEZONE")),
        )
    app.extensions[EXTENSION_KEY] = engine
    app.logger.info(
        "[QUOTA] engine ready backend=%s tz=%s limits=%s",
        engine.store.name, engine.tz, {p.value: n for p, n in engine.limits.items()},
    )
    return engine


def get_engine() -> EntitlementEngine:
    return current_app.extensions[EXTENSION_KEY]
