"""Process-wide logging setup."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

_RESERVED = frozenset(
    {
        "args", "msg", "levelname", "levelno", "pathname", "filename", "module", "exc_info",
        "exc_text", "stack_info", "lineno", "funcName", "created", "msecs", "relativeCreated",
        "thread", "threadName", "processName", "process", "name", "message", "taskName",
    }
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # extra= fields end up as record attributes
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RESERVED or key in payload:
                continue
            try:
                json.dumps({key: value})
                payload[key] = value
            except (TypeError, ValueError):
                payload[key] = str(value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _as_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return logging.INFO


def configure_logging(*, level: str | int | None = None, json_format: bool = False) -> None:
    handler = logging.StreamHandler(stream=sys.stdout)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

    root = logging.getLogger()
    root.setLevel(_as_level(level))
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    # uvicorn access logs are noisy with long-polling devices
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


__all__ = ["JsonFormatter", "configure_logging"]
