"""Structured logging configuration with request_id propagation"""

import contextvars
import logging
import sys
from typing import Any, Dict, List, Optional
from uuid import uuid4

import structlog

request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)

# Command-line switches whose following argument must never reach the logs
SENSITIVE_FLAGS = ("--cookies", "--extractor-args", "--password", "--username")


def add_request_id(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request_id to log entries from context variable"""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structured logging with structlog

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format ("json" or "console")
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_request_id,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set request_id in context variable

    Args:
        request_id: Optional request ID, generates one if not provided

    Returns:
        The request_id that was set
    """
    if request_id is None:
        request_id = f"req_{uuid4().hex[:12]}"
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def clear_request_id() -> None:
    request_id_var.set(None)


def redact_command(cmd: List[str]) -> List[str]:
    """
    Redact credential arguments from a command line before logging it.

    Args:
        cmd: Command list

    Returns:
        Copy of the command with values after sensitive flags replaced
    """
    redacted = []
    skip_next = False

    for arg in cmd:
        if skip_next:
            redacted.append("[REDACTED]")
            skip_next = False
        elif arg in SENSITIVE_FLAGS:
            redacted.append(arg)
            skip_next = True
        else:
            redacted.append(arg)

    return redacted
