# whiteboard/routes/api.py
from flask import Blueprint, current_app, jsonify, request

from ..services import registry_for

URL_PREFIX = "/api"

bp = Blueprint("api", __name__)


def _categories_arg():
    raw = request.args.getlist("categories")
    return [c for value in raw for c in value.split(",") if c.strip()]


@bp.get("/schedule")
def schedule():
    name = request.args.get("name", "")
    current_app.logger.info(
        "Schedule requested",
        extra={"person": name, "days": request.args.get("days"), "remote_addr": request.remote_addr},
    )
    services = registry_for(current_app).get()
    payload = services.query.query(
        name,
        days=request.args.get("days"),
        test_date=request.args.get("testDate"),
        categories=_categories_arg(),
    )
    return jsonify(payload)
