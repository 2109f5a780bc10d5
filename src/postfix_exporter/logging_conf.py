"""
Logging for the exporter.

Collection cycles are reported as events (``collect.start``, ``collect.done``,
``collect.error``) whose details are passed through ``extra``. Both formats carry those
details: the JSON formatter as fields of the record, the text formatter as ``key=value``
pairs after the message. Records go to stderr unless a file is configured, so that an
exposition document written to stdout by ``collect`` is never interleaved with log
output.
"""
import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, MutableMapping, Optional

APP_NAME = "postfix-exporter"

DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEFAULT_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" | "json"
DEFAULT_FILE = os.getenv("LOG_FILE", "")         # empty = stderr only
DEFAULT_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", "10485760"))  # 10 MiB
DEFAULT_BACKUPS = int(os.getenv("LOG_BACKUPS", "5"))

# Attributes every LogRecord carries; anything else was passed through ``extra``
_RECORD_ATTRIBUTES = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def event_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields passed to a logging call through ``extra``, in the order given."""
    return {
        k: v
        for k, v in record.__dict__.items()
        if k not in _RECORD_ATTRIBUTES and not k.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: MutableMapping[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "app": APP_NAME,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in event_fields(record).items():
            if k in payload:
                continue
            try:
                json.dumps(v)
                payload[k] = v
            except (TypeError, ValueError):
                payload[k] = str(v)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class EventFormatter(logging.Formatter):
    """Text formatter appending the event fields as ``key=value`` pairs."""

    def __init__(self):
        super().__init__(
            fmt=f"%(asctime)s {APP_NAME} %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def formatMessage(self, record: logging.LogRecord) -> str:
        message = super().formatMessage(record)
        fields = event_fields(record)
        if not fields:
            return message
        return message + " " + " ".join(f"{k}={v}" for k, v in fields.items())


def setup_logging(level: Optional[str] = None,
                  fmt: Optional[str] = None,
                  file_path: Optional[str] = None) -> None:
    """
    Configure root logging once. Honors env vars if args are None.
    """
    if getattr(setup_logging, "_configured", False):
        return
    level = (level or DEFAULT_LEVEL).upper()
    fmt = (fmt or DEFAULT_FORMAT).lower()
    file_path = file_path if file_path is not None else DEFAULT_FILE

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))

    if file_path:
        handler: logging.Handler = RotatingFileHandler(
            file_path, maxBytes=DEFAULT_MAX_BYTES, backupCount=DEFAULT_BACKUPS
        )
    else:
        handler = logging.StreamHandler()

    formatter: logging.Formatter = JsonFormatter() if fmt == "json" else EventFormatter()
    handler.setFormatter(formatter)
    root.addHandler(handler)

    setup_logging._configured = True  # type: ignore[attr-defined]
