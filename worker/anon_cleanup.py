# worker/anon_cleanup.py
import logging
import time
from datetime import timedelta

from flask import current_app

from core.metering import get_engine
from services.metering.errors import StorageTransientError
from utils.time_utils import local_date

logger = logging.getLogger(__name__)


def run_once(now=None):
    """
    Purge anonymous usage rows older than ANON_RETENTION_DAYS.
    Needs an app context. Not correctness-bearing: the engine only ever
    reads today's row for an address.
    """
    engine = get_engine()
    retention = max(0, int(current_app.config.get("ANON_RETENTION_DAYS", 7)))
    today = local_date(now or engine.clock(), engine.tz)
    cutoff = today - timedelta(days=retention)

    purged = engine.store.purge_anonymous(cutoff)
    logger.info("[CLEANUP] purged=%s anonymous rows older than %s", purged, cutoff)
    return {"purged": purged, "cutoff": cutoff.isoformat()}


def run_loop():
    from app import create_app

    app = create_app()
    poll = int(app.config.get("CLEANUP_POLL_SECONDS", 3600))

    while True:
        with app.app_context():
            try:
                run_once()
            except StorageTransientError as e:
                logger.warning("[CLEANUP] storage unavailable, retry next tick: %s", e)
        time.sleep(poll)


if __name__ == "__main__":
    run_loop()
