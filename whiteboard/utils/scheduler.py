"""Background thread that keeps every tier's cache warm."""

import threading
import time
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..config import Tier, WhiteboardSettings
from ..dates import get_timezone, resolve_as_of
from ..errors import WhiteboardError
from ..services import registry_for


def due_tiers(settings: WhiteboardSettings, last_runs: Dict[str, datetime], now: datetime) -> List[Tier]:
    """Tiers never run, or last run at least ``refresh_minutes`` ago."""

    due = []
    for tier in settings.tiers:
        last = last_runs.get(tier.name)
        if last is None or now - last >= timedelta(minutes=tier.refresh_minutes):
            due.append(tier)
    return due


def run_due_tiers(app, last_runs: Dict[str, datetime], now: Optional[datetime] = None) -> List[str]:
    registry = registry_for(app)
    tz = get_timezone(app.config.get("TZ", "America/Chicago"))
    now = now or datetime.now(tz)

    services = registry.get()
    tiers = due_tiers(services.settings, last_runs, now)
    if not tiers:
        return []

    as_of, _ = resolve_as_of(None, app.config.get("SIMULATED_TODAY", ""), app.config.get("TZ", "America/Chicago"))
    ran = []
    with registry.run_lock:
        for tier in tiers:
            try:
                services.processor.run_tier(tier, as_of)
            except WhiteboardError as exc:
                app.logger.error("Scheduled run for %s failed: %s", tier.name, exc.message)
                continue
            except Exception:
                app.logger.exception("Scheduled run for %s failed", tier.name)
                continue
            last_runs[tier.name] = now
            ran.append(tier.name)
    return ran


def _scheduler_loop(app):
    interval = max(1, int(app.config.get("BATCH_INTERVAL_MINUTES", 5))) * 60
    last_runs: Dict[str, datetime] = {}
    while True:
        try:
            ran = run_due_tiers(app, last_runs)
            if ran:
                app.logger.info("Scheduled batch refreshed tiers: %s", ", ".join(ran))
        except Exception:
            app.logger.exception("Scheduled batch cycle failed")

        app.logger.debug("Next batch check in %.1f minutes", interval / 60)
        time.sleep(interval)


def init_batch_scheduler(app):
    thread = threading.Thread(target=_scheduler_loop, args=(app,), daemon=True, name="whiteboard-batch")
    thread.start()
    app.logger.info(
        "Batch scheduler started (checking every %s minutes).", app.config.get("BATCH_INTERVAL_MINUTES", 5)
    )
