"""Shared utilities used across the translator.

Includes:
- structured logging with privacy guardrails
- configuration validation helpers
"""

from __future__ import annotations

from .logging import configure_logging, log_event
from .validation import ValidationError, ValidationIssue

__all__ = [
    "configure_logging",
    "log_event",
    "ValidationError",
    "ValidationIssue",
]
