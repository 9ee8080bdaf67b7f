import logging
import os

# ``extra`` keys the whiteboard modules attach to their records
CONTEXT_FIELDS = (
    "tier",
    "as_of",
    "sheet",
    "layout",
    "person",
    "range",
    "key",
    "bytes",
    "ttl",
    "cached",
    "events",
    "people",
    "days",
    "conflicts",
    "path",
    "remote_addr",
)

# chatty transport loggers pulled in by gspread and requests
QUIET_LOGGERS = ("urllib3", "google.auth", "gspread")


class ContextFormatter(logging.Formatter):
    """Appends whatever known ``extra`` fields a record carries as ``key=value``."""

    def format(self, record):
        line = super().format(record)
        context = " ".join(
            f"{field}={getattr(record, field)}" for field in CONTEXT_FIELDS if hasattr(record, field)
        )
        return f"{line} | {context}" if context else line


def init_logging(app):
    """Configure logging for the schedule API and the batch scheduler thread."""
    log_dir = app.config.get("LOG_DIR") or os.path.join(os.path.dirname(__file__), "..", "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "whiteboard.log")

    log_level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, log_level, logging.INFO)

    formatter = ContextFormatter("%(asctime)s [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s")
    handlers = [logging.FileHandler(log_file, encoding="utf-8"), logging.StreamHandler()]
    for handler in handlers:
        handler.setFormatter(formatter)
    logging.basicConfig(level=numeric_level, handlers=handlers)

    logging.getLogger("whiteboard").setLevel(numeric_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    app.logger = logging.getLogger("whiteboard.app")
    app.logger.setLevel(numeric_level)
    app.logger.info("Logging initialized at %s level", log_level, extra={"path": log_file})
