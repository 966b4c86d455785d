from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


# Attributes every stdlib LogRecord carries; anything else was passed via ``extra``.
_STDLIB_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Unredeemed gift card codes are bearer credentials.
_MASKED_FIELDS = frozenset({"code", "api_key", "x_api_key"})

_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


def mask_secret(value: Any, *, visible: int = 4) -> str:
    text = str(value)
    if len(text) <= visible:
        return "*" * len(text)
    hidden = "".join("*" if char.isalnum() else char for char in text[:-visible])
    return hidden + text[-visible:]


class InterceptHandler(logging.Handler):
    """Route stdlib records (uvicorn, sqlalchemy, alembic) into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except (TypeError, ValueError):  # pragma: no cover - malformed format strings
            message = str(record.msg)

        extra = {key: value for key, value in vars(record).items() if key not in _STDLIB_RECORD_FIELDS}
        bound = logger.bind(logger_name=record.name, **extra)
        bound.opt(depth=6, exception=record.exc_info).log(level, message.replace("{", "{{").replace("}", "}}"))


def _attach_context(record: Dict[str, Any]) -> None:
    """Loguru patcher: mask secrets and attach the active span ids."""

    extra = record["extra"]
    for key in _MASKED_FIELDS & extra.keys():
        extra[key] = mask_secret(extra[key])

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        extra["trace_id"] = f"{span_context.trace_id:032x}"
        extra["span_id"] = f"{span_context.span_id:016x}"


class _JsonSink:
    def __init__(self, *, service_name: str, environment: str, version: str) -> None:
        self._static = {"service": service_name, "environment": environment, "version": version}

    def __call__(self, message: Any) -> None:
        record = message.record
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["extra"].pop("logger_name", record["name"]),
            **self._static,
            **record["extra"],
        }
        if record["exception"] is not None:
            payload["exception"] = repr(record["exception"].value)
        sys.stdout.write(json.dumps(payload, default=str) + "\n")


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Send Loguru and stdlib logging to one JSON-lines sink on stdout."""

    logger.remove()
    logger.configure(patcher=_attach_context)
    logger.add(
        _JsonSink(service_name=service_name, environment=environment, version=version),
        level=level.upper(),
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)
