"""Utility modules for the Discord Claude relay."""

from .log_sanitizer import sanitize_log, sanitize_for_log

__all__ = ["sanitize_log", "sanitize_for_log"]
