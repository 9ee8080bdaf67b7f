"""Application factory and blueprint registration."""

import importlib
import inspect
import logging
import os
import pkgutil

from flask import Blueprint, Flask, jsonify, request

from .config import Config, SettingsLoader
from .errors import ErrorCode, WhiteboardError, error_payload
from .services import EXTENSION_KEY, ServiceRegistry
from .utils.logger import init_logging
from .utils.scheduler import init_batch_scheduler


def create_app(config_overrides=None, reader=None) -> Flask:
    """Create and configure the Flask application.

    ``reader`` replaces the sheet reader built from config; tests pass an
    in-memory one.
    """

    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.config.setdefault("CACHE_DIR", os.path.join(os.path.dirname(__file__), "cache"))
    app.config.setdefault("TZ", "America/Chicago")

    try:
        init_logging(app)
    except Exception:  # pragma: no cover - only hit during catastrophic logging failure
        logging.basicConfig(level=logging.INFO)
        app.logger.exception("init_logging failed; using basic logging fallback")

    loader = SettingsLoader(app.config.get("WHITEBOARD_CONFIG_PATH", ""))
    app.extensions[EXTENSION_KEY] = ServiceRegistry(app, loader, reader=reader)

    @app.get("/healthz")
    def healthz():
        """Lightweight liveness check."""

        return "ok", 200

    # Blueprint auto-discovery ---------------------------------------------
    def register_all_blueprints() -> None:
        base_pkg = "whiteboard.routes"
        try:
            pkg = importlib.import_module(base_pkg)
        except Exception as exc:
            app.logger.warning("Could not import %s: %s", base_pkg, exc)
            return

        for modinfo in pkgutil.iter_modules(pkg.__path__):
            name = f"{base_pkg}.{modinfo.name}"
            try:
                module = importlib.import_module(name)
            except Exception as exc:
                app.logger.warning("Skipping %s (import error): %s", name, exc)
                continue

            blueprints = [
                obj
                for _, obj in inspect.getmembers(module)
                if isinstance(obj, Blueprint)
            ]
            if not blueprints:
                continue

            url_prefix = getattr(module, "URL_PREFIX", None)
            for bp in blueprints:
                prefix = url_prefix or f"/{modinfo.name}"
                try:
                    app.register_blueprint(bp, url_prefix=prefix)
                    app.logger.info("Registered %s at %s", bp.name, prefix)
                except Exception as exc:
                    app.logger.warning("Failed registering %s at %s: %s", bp.name, prefix, exc)

    register_all_blueprints()

    # Batch scheduler ------------------------------------------------------
    if app.config.get("ENABLE_SCHEDULER") and not app.config.get("SCHEDULER_STARTED", False):
        try:
            init_batch_scheduler(app)
            app.config["SCHEDULER_STARTED"] = True
        except Exception as exc:
            app.logger.exception("Failed to start batch scheduler: %s", exc)

    # Error handlers -------------------------------------------------------
    @app.errorhandler(WhiteboardError)
    def _handle_whiteboard_error(error):
        if error.http_status >= 500:
            app.logger.error("%s: %s", error.code.value, error.message, extra={"details": error.details})
        else:
            app.logger.info("%s: %s", error.code.value, error.message)
        return jsonify(error.to_payload()), error.http_status

    @app.errorhandler(404)
    def _handle_404(error):
        return jsonify(error_payload(ErrorCode.NOT_FOUND, "Not Found", {"path": request.path})), 404

    @app.errorhandler(500)
    def _handle_500(error):
        app.logger.exception("500: %s", error)
        return jsonify(error_payload(ErrorCode.INTERNAL_ERROR, "Internal Server Error")), 500

    return app
