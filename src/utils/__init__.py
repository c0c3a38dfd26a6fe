# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for the notification service.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime and calendar-week operations
"""

from src.utils.datetime import (
    ensure_utc,
    format_date_es,
    format_time_es,
    utc_now,
    week_start,
    weekday_name_es,
)
from src.utils.logging import bind_context, clear_context, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "ensure_utc",
    "week_start",
    "format_date_es",
    "format_time_es",
    "weekday_name_es",
]
