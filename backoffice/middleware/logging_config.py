"""
Logging setup for the back-office app.

One stderr handler on the root logger. Production writes one JSON
object per line so records can be shipped as-is; development and tests
get a short console line. ``LOG_LEVEL`` overrides the level.

Records may carry context through ``extra=``; the keys listed in
``CONTEXT_KEYS`` are picked up by both formatters.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Request fields (set by the timing middleware) and the record ids the
# services attach to audit-relevant log lines.
CONTEXT_KEYS = (
    "request_id", "method", "path", "status", "duration_ms", "remote_addr",
    "trainer_id", "booking_id", "session_id", "certificate_number", "email_queue_id",
)

_QUIET_LOGGERS = ("werkzeug", "urllib3", "sqlalchemy.engine", "openpyxl")


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in CONTEXT_KEYS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """Line-delimited JSON for log collectors."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update(_context(record))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message`` plus ids, for local runs."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{stamp} {record.levelname:<7} {record.name}: {record.getMessage()}"
        ids = {k: v for k, v in _context(record).items()
               if k in ("trainer_id", "booking_id", "session_id", "certificate_number")}
        if ids:
            line += " " + " ".join(f"{k}={v}" for k, v in ids.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Attach the stderr handler and set levels for ``app``."""
    testing = app.config.get("TESTING", False)
    production = not (testing or app.config.get("DEBUG", False))

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ConsoleFormatter())

    # create_app runs once per test session and once per CLI call; replace, not append
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging ready (level=%s, json=%s)", level_name, production)
