"""
Logging utilities for the MCP server core.

Provides structured logging configuration suited to MCP server operation,
where stdout is reserved for protocol traffic.
"""

import logging
import sys
from typing import Any, Dict

import structlog

SENSITIVE_KEYS = ("password", "token", "secret", "key", "auth", "credential")
REDACTED = "[REDACTED]"


def setup_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging for the MCP server.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stderr keeps stdout free for the stdio transport
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def sanitize_for_logging(params: Any) -> Any:
    """
    Redact sensitive values from a params structure before logging it.

    Keys are matched case-insensitively by substring, recursively through
    nested mappings and lists. The input is never modified.
    """
    if isinstance(params, dict):
        sanitized: Dict[Any, Any] = {}
        for key, value in params.items():
            if isinstance(key, str) and any(s in key.lower() for s in SENSITIVE_KEYS):
                sanitized[key] = REDACTED
            else:
                sanitized[key] = sanitize_for_logging(value)
        return sanitized
    if isinstance(params, list):
        return [sanitize_for_logging(item) for item in params]
    return params
