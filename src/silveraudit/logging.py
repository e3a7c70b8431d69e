"""Structured logging for SilverAudit.

Provides JSON-structured logging for production use and human-readable
logs for development. Includes a timing context manager for pipeline stages.
"""

import json
import logging
import os
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

_log_format = os.environ.get("SILVERAUDIT_LOG_FORMAT", "text")
_log_level = os.environ.get("SILVERAUDIT_LOG_LEVEL", "INFO").upper()

logger = logging.getLogger("silveraudit")
logger.setLevel(getattr(logging, _log_level, logging.INFO))


class JsonFormatter(logging.Formatter):
    """Format log records as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra_data"):
            extra_data: dict[str, Any] = getattr(record, "extra_data", {})
            log_data.update(extra_data)
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable format that appends structured fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra_data: dict[str, Any] = getattr(record, "extra_data", {})
        if extra_data:
            fields = " ".join(f"{k}={v}" for k, v in extra_data.items())
            line = f"{line} [{fields}]"
        return line


# Avoid adding multiple handlers
if not logger.handlers:
    handler = logging.StreamHandler()
    if _log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            TextFormatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    logger.addHandler(handler)


def log_extra(message: str, level: int = logging.INFO, **extra: Any) -> None:
    """Log a message with extra structured data."""
    if not logger.isEnabledFor(level):
        return
    record = logging.LogRecord(
        name=logger.name,
        level=level,
        pathname="",
        lineno=0,
        msg=message,
        args=(),
        exc_info=None,
    )
    record.extra_data = extra  # noqa: B010
    logger.handle(record)


@asynccontextmanager
async def timed_operation(
    name: str,
    **context: Any,
) -> AsyncGenerator[dict[str, Any], None]:
    """Context manager that times an async operation and logs it.

    Usage:
        async with timed_operation("lighthouse_audit", url=url) as ctx:
            outcome = await run()
            ctx["attempts"] = outcome.attempts
    """
    start = time.perf_counter()
    ctx: dict[str, Any] = {"operation": name, **context}

    try:
        yield ctx
        elapsed = time.perf_counter() - start
        ctx["duration_ms"] = round(elapsed * 1000, 2)
        ctx["success"] = True
        log_extra(f"{name} completed", logging.INFO, **ctx)
    except Exception as e:
        elapsed = time.perf_counter() - start
        ctx["duration_ms"] = round(elapsed * 1000, 2)
        ctx["success"] = False
        ctx["error"] = str(e)
        ctx["error_type"] = type(e).__name__
        log_extra(f"{name} failed", logging.ERROR, **ctx)
        raise
