"""
Structured logging with automatic probe-scope correlation.

Key Features:
- Standard logger.debug()/info() calls pick up the active probe scope
- ContextVar-based: follows awaits and spawned tasks, never leaks across them
- Dual output modes: JSON for production logs, human-readable for local runs
"""

import json
import logging
import os
import re
from datetime import UTC, datetime
from typing import Any

from probekit.scope import current_scope

# ANSI escape code pattern (matches \033[...m or \x1b[...m)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


def get_scope_context() -> dict[str, Any]:
    """
    Get the logging context for the current execution.

    Returns:
        ``{"probe_scope": <name>}`` inside a probe scope, else an empty dict.
    """
    scope = current_scope()
    if scope is None:
        return {}
    return {"probe_scope": scope.name}


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Produces machine-parseable entries with timestamp, level, logger and
    message, plus ``probe_scope`` when a probe scope is active and ``label``
    when the record was logged with ``extra={"label": ...}``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(get_scope_context())

        label = getattr(record, "label", None)
        if label is not None:
            log_entry["label"] = label

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=repr)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Prefixes each line with the active probe scope, e.g.
    ``[DEBUG   ] [probe-3] Probe probe-3 disposed``.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, use_color: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable string."""
        scope_name = get_scope_context().get("probe_scope")
        context_prefix = f"[{scope_name}] " if scope_name else ""

        color = self.COLORS.get(record.levelname, "") if self.use_color else ""
        reset = self.RESET if self.use_color else ""
        level = f"{record.levelname:<8}"

        message = f"{color}[{level}]{reset} {context_prefix}{record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
    logger_name: str = "probekit",
) -> logging.Handler:
    """
    Attach a stream handler with a probekit formatter.

    Only the ``probekit`` logger is configured by default; pass
    ``logger_name=""`` to configure the root logger instead.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format:
            - "json": Machine-parseable JSON (for production)
            - "human": Human-readable with colors (for development)
            - "auto": JSON if LOG_FORMAT=json or ENV=production, else human
        logger_name: Logger to configure

    Returns:
        The installed handler
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        if log_format_env == "json" or env == "production":
            format = "json"
        else:
            format = "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = HumanReadableFormatter(use_color=not os.getenv("NO_COLOR"))

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    for existing in list(logger.handlers):
        if getattr(existing, "_probekit_handler", False):
            logger.removeHandler(existing)
    handler._probekit_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    return handler
