# flask_app/utils/logging_config.py
"""
Logging setup for the Flask app and the ``flask_app`` package loggers.

Route handlers log through ``current_app.logger``; library modules such as
the merge engine use ``logging.getLogger(__name__)`` under ``flask_app``.
Both get the same handlers.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

PACKAGE_LOGGER = "flask_app"
_HANDLER_MARKER = "_volunteer_portal_handler"


class JsonFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record):
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def _build_formatter(log_format):
    if str(log_format).lower() == "json":
        return JsonFormatter()
    return logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")


def _build_handlers(app, formatter, level):
    handlers = []

    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console = logging.StreamHandler(stream=sys.stdout)
        handlers.append(console)

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "app.log"),
            maxBytes=app.config.get("LOG_FILE_MAX_BYTES", 10485760),
            backupCount=app.config.get("LOG_FILE_BACKUP_COUNT", 10),
            encoding="utf-8",
        )
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARKER, True)
    return handlers


def _replace_handlers(logger, handlers, level):
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)


def setup_logging(app):
    """
    Configure logging from app config.

    Safe to call more than once; handlers installed by a previous call are
    replaced rather than duplicated.
    """
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).strip().upper() or "INFO"
    level = getattr(logging, level_name, logging.INFO)
    formatter = _build_formatter(app.config.get("LOG_FORMAT", "text"))

    _replace_handlers(app.logger, _build_handlers(app, formatter, level), level)
    _replace_handlers(logging.getLogger(PACKAGE_LOGGER), _build_handlers(app, formatter, level), level)

    # SQL echo is controlled by SQLALCHEMY_ECHO, not by the app log level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    app.logger.debug(f"Logging configured: level={level_name} format={app.config.get('LOG_FORMAT', 'text')}")
