"""
Structured Logger — per-session log context for concurrent asyncio tasks.

Each session runs in its own task, so the active session id is kept in a
``contextvars.ContextVar``.  ``SessionContextFilter`` copies it onto every
record; the formatters render it either as JSON fields or as a ``[id]``
prefix.

- **JSON mode** (`MINICLAW_LOG_FORMAT=json`): one JSON object per line.
- **Human mode** (default): ``12:00:01 [INFO] miniclaw.core.agent: [1a2b3c4d] ...``
"""

from __future__ import annotations

import contextvars
import dataclasses
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

CONTEXT_FIELDS = ("session_id", "provider_name")


@dataclasses.dataclass(frozen=True)
class LogContext:
    session_id: str = ""
    provider_name: str = ""
    extra: Dict[str, Any] = dataclasses.field(default_factory=dict)

    def merged_with(self, **kwargs: Any) -> "LogContext":
        """Copy with fields replaced; ``extra`` is merged key by key."""
        extra = {**self.extra, **kwargs.pop("extra", {})}
        return dataclasses.replace(self, extra=extra, **kwargs)


_EMPTY = LogContext()
_context: contextvars.ContextVar[LogContext] = contextvars.ContextVar("miniclaw_log_context")


def current_context() -> LogContext:
    return _context.get(_EMPTY)


def bind_context(**kwargs: Any) -> contextvars.Token:
    """
    Add fields to the running task's context and return the reset token.

    A task started with ``asyncio.create_task`` copies the context at
    creation, so binding inside one session's task never shows up in another.
    """
    return _context.set(current_context().merged_with(**kwargs))


def reset_context(token: contextvars.Token) -> None:
    _context.reset(token)


class SessionContextFilter(logging.Filter):
    """Stamp the current context fields onto each record (explicit ``extra=`` wins)."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = current_context()
        for name in CONTEXT_FIELDS:
            if not getattr(record, name, ""):
                setattr(record, name, getattr(ctx, name))
        if ctx.extra and not getattr(record, "log_extra", None):
            record.log_extra = dict(ctx.extra)
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({
            name: getattr(record, name) for name in CONTEXT_FIELDS if getattr(record, name, "")
        })
        if getattr(record, "log_extra", None):
            entry["extra"] = record.log_extra
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(session_prefix)s%(message)s"

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None):
        super().__init__(fmt=fmt or self.DEFAULT_FORMAT, datefmt=datefmt or "%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        session_id = getattr(record, "session_id", "")
        record.session_prefix = f"[{session_id}] " if session_id else ""
        return super().format(record)


def setup_structured_logging(
    json_mode: Optional[bool] = None,
    level: str = "WARNING",
) -> logging.Handler:
    """
    Replace the root logger's handlers with one stderr handler.

    ``json_mode=None`` reads ``MINICLAW_LOG_FORMAT`` (``json`` turns it on).
    Returns the installed handler.
    """
    if json_mode is None:
        json_mode = os.getenv("MINICLAW_LOG_FORMAT", "").lower() == "json"

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter() if json_mode else HumanFormatter())
    handler.addFilter(SessionContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return handler
