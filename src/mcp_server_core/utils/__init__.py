"""Utility modules."""

from .logging import get_logger, sanitize_for_logging, setup_logging

__all__ = [
    "setup_logging",
    "get_logger",
    "sanitize_for_logging",
]
