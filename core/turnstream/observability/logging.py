"""
Structured logging with automatic turn context propagation.

Key Features:
- Standard logger.info() calls pick up the current turn's identifiers
- ContextVar-based propagation: each asyncio task carries its own context
- Dual output modes: JSON for production, human-readable for development

Context flow:
    TurnOrchestrator._run_turn() → sets turn_id, chat_id
        ↓ (automatic propagation via ContextVar)
    TurnAccumulator META handling → updates chat_id on resolution, adds run_id
        ↓
    StreamProcessor replay → logger.info("Replaying ...") carries all of it
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for turn propagation; copied into every asyncio task
trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

# ANSI escape code pattern (matches \033[...m or \x1b[...m)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")

_EXTRA_FIELDS = ("event_id", "event_type", "replay_attempt", "status_code")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Produces machine-parseable log entries with:
    - Standard fields (timestamp, level, logger, message)
    - Turn context (turn_id, chat_id, run_id)
    - Selected fields from ``extra`` (event_id, event_type, replay_attempt, status_code)
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        context = trace_context.get() or {}

        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(context)

        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Colorized level plus a short turn/chat/run prefix for correlation.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable string."""
        context = trace_context.get() or {}
        turn_id = context.get("turn_id", "")
        chat_id = context.get("chat_id", "")
        run_id = context.get("run_id", "")

        prefix_parts = []
        if turn_id:
            prefix_parts.append(f"turn:{turn_id[:8]}")
        if chat_id:
            prefix_parts.append(f"chat:{chat_id}")
        if run_id:
            prefix_parts.append(f"run:{run_id[-8:]}")

        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"

        message = f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure logging for the application.

    Call ONCE at startup (the CLI does this); library code only uses
    ``logging.getLogger(__name__)``.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format:
            - "json": Machine-parseable JSON (for production)
            - "human": Human-readable with colors (for development)
            - "auto": JSON if LOG_FORMAT=json or ENV=production, else human
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    formatter: logging.Formatter
    if format == "json":
        formatter = StructuredFormatter()
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # httpx/httpcore log every request at INFO; route them through our formatter
    for logger_name in ("httpx", "httpcore"):
        lib_logger = logging.getLogger(logger_name)
        lib_logger.handlers.clear()
        lib_logger.propagate = True
        if root_logger.level > logging.DEBUG:
            lib_logger.setLevel(logging.WARNING)


def set_trace_context(**kwargs: Any) -> None:
    """
    Merge fields into the current turn context.

    Context lives in a ContextVar, so it follows the current asyncio task and
    never leaks between concurrently running turns.

    Args:
        **kwargs: Context fields (turn_id, chat_id, run_id, ...)
    """
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict:
    """
    Get current turn context.

    Returns:
        Copy of the context dict; empty if no context is set.
    """
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear turn context (between tests, or before an unrelated turn)."""
    trace_context.set(None)
