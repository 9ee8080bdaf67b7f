# whiteboard/routes/admin.py
from flask import Blueprint, current_app, jsonify, request

from ..dates import resolve_as_of
from ..errors import InvalidRequest
from ..services import registry_for

URL_PREFIX = "/admin"

bp = Blueprint("admin", __name__)


@bp.get("/run-batch")
def run_batch():
    tier_name = request.args.get("tier", "").strip()
    current_app.logger.info(
        "Manual batch run requested",
        extra={"tier": tier_name or "all", "remote_addr": request.remote_addr},
    )
    registry = registry_for(current_app)
    services = registry.get()

    if tier_name:
        try:
            tiers = [services.settings.tier(tier_name)]
        except KeyError as exc:
            raise InvalidRequest(
                f"Unknown tier '{tier_name}'",
                {"tier": tier_name, "tiers": [t.name for t in services.settings.tiers]},
            ) from exc
    else:
        tiers = list(services.settings.tiers)

    as_of, test_mode = resolve_as_of(
        request.args.get("testDate"),
        current_app.config.get("SIMULATED_TODAY", ""),
        current_app.config.get("TZ", "America/Chicago"),
    )

    with registry.run_lock:
        results = {tier.name: services.processor.run_tier(tier, as_of) for tier in tiers}

    return jsonify(
        {
            "ok": all(not m.errors for m in results.values()),
            "asOf": as_of.isoformat(),
            "testMode": test_mode,
            "state": services.processor.state.value,
            "tiers": {name: m.to_dict() for name, m in results.items()},
        }
    )
