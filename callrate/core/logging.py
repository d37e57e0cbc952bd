"""Logging utilities: call-scope context and JSON output.

callrate only emits records through module loggers; it never installs
handlers on import. What this module adds:
- A call scope held in a context variable. Code that acquires a slot on
  behalf of something (a wrapped function, an HTTP client) binds it with
  ``call_scope(...)`` so every limiter record emitted meanwhile carries it.
- ``CallScopeFilter`` copying the bound scope onto records.
- ``JsonFormatter`` and ``configure_logging()`` for hosts that want
  structured output from the ``callrate`` logger.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from callrate.core.config import LogSettings, settings

_call_scope_var: ContextVar[dict[str, Any] | None] = ContextVar("callrate_call_scope", default=None)

# Attributes every LogRecord has; anything else came in through extra= or a filter
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


@contextmanager
def call_scope(**fields: Any) -> Iterator[dict[str, Any]]:
    """Bind log fields for records emitted inside the block.

    Scopes nest; inner fields win over outer ones and the outer scope is
    restored on exit. Safe across awaits because each task has its own
    context.

    Args:
        **fields: Fields to attach, e.g. ``function="fetch"`` or ``key_hash=...``.

    Yields:
        The merged scope now in effect.
    """

    merged = {**(_call_scope_var.get() or {}), **fields}
    token = _call_scope_var.set(merged)
    try:
        yield merged
    finally:
        _call_scope_var.reset(token)


def current_call_scope() -> dict[str, Any]:
    """Return a copy of the fields bound by the enclosing ``call_scope``."""

    return dict(_call_scope_var.get() or {})


class CallScopeFilter(logging.Filter):
    """Attach call-scope fields the record does not already carry."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in current_call_scope().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


def _record_extras(record: LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """Format a LogRecord as one JSON object per line."""

    def __init__(self, *, ensure_ascii: bool = True) -> None:
        super().__init__()
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        record_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        record_data.update(_record_extras(record))

        if record.exc_info:
            record_data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(record_data, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    """Construct the logging handler based on configuration.

    Args:
        log_settings: Resolved logging settings from environment.

    Returns:
        Configured logging handler (stdout, file or rotating file).
    """

    if log_settings.output == "file":
        file_path = Path(log_settings.file_path or "logs/callrate.log")
        file_path.parent.mkdir(parents=True, exist_ok=True)
        if log_settings.max_bytes:
            return RotatingFileHandler(
                file_path,
                maxBytes=log_settings.max_bytes,
                backupCount=log_settings.backup_count,
                encoding="utf-8",
            )
        return logging.FileHandler(file_path, encoding="utf-8")

    return logging.StreamHandler(sys.stdout)


def configure_logging(
    log_settings: LogSettings | None = None,
    *,
    logger_name: str = "callrate",
) -> logging.Logger:
    """Attach a call-scope aware handler to the package logger.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
        logger_name: Logger to configure. Pass "" to configure the root logger.

    Returns:
        The configured logger.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(CallScopeFilter())

    if cfg.format == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    logger = logging.getLogger(logger_name)
    for existing in logger.handlers:
        existing.close()
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))
    return logger
