"""
Root logger setup for the ledger service.

Plain lines by default, one JSON object per line when LOG_JSON is set.
Records may carry structured fields through ``extra=``; only the names in
LEDGER_FIELDS are emitted, so nothing a caller attaches by accident (a
wallet, an amount) reaches the output.
"""
import json
import logging
import sys

from config import Settings

LEDGER_FIELDS = ("code", "method", "path", "status", "duration_ms")

NOISY_LOGGERS = ("uvicorn.access", "httpx", "sqlalchemy.engine")


class JsonFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in LEDGER_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info and record.exc_info[0]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def build_handler(settings: Settings) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if settings.log_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    return handler


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    # One handler only, even when the app module is imported twice
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(build_handler(settings))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
