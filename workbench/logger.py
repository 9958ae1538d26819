"""
Structured logging for the workbench services.

Every module calls ``setup_logger(__name__)`` once at import time and logs
with plain ``logger.info(...)``; contextual fields travel through
``extra=log_extra(...)`` and end up as top-level JSON keys.
"""

from __future__ import annotations
import datetime
import json
import logging
import sys
from typing import Any

from workbench.config import settings

# Attributes every LogRecord carries – never copied into the payload.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # merge extra fields
        for k, v in record.__dict__.items():
            if k not in _RESERVED:
                payload[k] = v

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def setup_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(settings()["LOG_LEVEL"].upper())

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger


def log_extra(**kwargs: Any) -> dict:
    return kwargs
