from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from logging import LogRecord
from typing import Any, Dict
from uuid import UUID

from loguru import logger
from opentelemetry import trace


# Attributes every LogRecord carries; anything else was passed through ``extra=``.
_STANDARD_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")

_caller_context: ContextVar[Dict[str, str] | None] = ContextVar("panelpoints_caller", default=None)


def bind_caller(user_id: UUID | str, role: str) -> Token:
    """Attach the resolved session user to every log line emitted for this request."""

    return _caller_context.set({"user_id": str(user_id), "role": str(role)})


def reset_caller(token: Token) -> None:
    _caller_context.reset(token)


class InterceptHandler(logging.Handler):
    """Forward uvicorn and SQLAlchemy records to Loguru, keeping their ``extra`` fields."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except Exception:  # pragma: no cover - malformed format strings
            message = str(record.msg)

        extra = {key: value for key, value in vars(record).items() if key not in _STANDARD_RECORD_ATTRS}
        target = logger.bind(stdlib_logger=record.name, **extra)
        target.opt(depth=6, exception=record.exc_info).log(level, message.replace("{", "{{").replace("}", "}}"))


def build_log_payload(record: Dict[str, Any], metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a Loguru record into the JSON document shipped to the log pipeline."""

    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["extra"].get("stdlib_logger", record["name"]),
        "service": metadata.get("service_name", "unknown"),
        "environment": metadata.get("environment", "unknown"),
        "version": metadata.get("version", "unknown"),
    }

    caller = _caller_context.get()
    if caller:
        payload["caller"] = dict(caller)

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    # Structured ledger context (panelist_id, points, entry_id...) sits beside the envelope.
    for key, value in record["extra"].items():
        if key != "stdlib_logger" and key not in payload:
            payload[key] = value

    exception = record.get("exception")
    if exception is not None and exception.value is not None:
        payload["exception"] = f"{type(exception.value).__name__}: {exception.value}"

    return payload


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
) -> None:
    """Replace Loguru's default sink with one JSON line per record on stdout."""

    metadata = {"service_name": service_name, "environment": environment, "version": version}

    def _sink(message: "logger.Message") -> None:
        sys.stdout.write(json.dumps(build_log_payload(message.record, metadata), default=str) + "\n")

    logger.remove()
    logger.add(
        _sink,
        level="DEBUG" if environment == "development" else level,
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["InterceptHandler", "bind_caller", "build_log_payload", "configure_logging", "reset_caller"]
