"""Logging configuration utilities."""

import logging
import re
import sys
from typing import Optional

import structlog
from structlog.contextvars import bind_contextvars

# Instance credentials are the only secrets this client handles
SENSITIVE_KEYS = {"password"}

URL_KEYS = {"url"}

_URL_USERINFO = re.compile(r"//[^/@\s]+@")


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Hide instance passwords and credentials embedded in logged URLs."""
    for key, value in list(event_dict.items()):
        name = key.lower()
        if name in SENSITIVE_KEYS:
            event_dict[key] = "[REDACTED]"
        elif name in URL_KEYS and isinstance(value, str):
            event_dict[key] = _URL_USERINFO.sub("//[REDACTED]@", value)
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Configure structured logging on stderr.

    Standard output stays free for command results such as ``status``.
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_sensitive,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def bind_operation_context(operation: Optional[str] = None, package: Optional[str] = None) -> None:
    """Bind the command and package being processed to every log event."""
    if operation:
        bind_contextvars(operation=operation)
    if package:
        bind_contextvars(package=package)
