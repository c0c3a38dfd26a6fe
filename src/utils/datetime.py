# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the notification service.

All datetime operations should use these utilities so that timestamps
stay comparable across the rate limiter, the error history and the
notification history.

Design Decisions:
-----------------
1. All timestamps are stored in UTC
2. All Python datetimes are timezone-aware (with timezone.utc)
3. Attendance is keyed by calendar date; weeks start on Monday

Usage:
------
    from src.utils.datetime import utc_now, week_start

    now = utc_now()
    monday = week_start(now.date())
"""

from datetime import date, datetime, timedelta, timezone

SPANISH_WEEKDAYS = (
    "lunes",
    "martes",
    "miércoles",
    "jueves",
    "viernes",
    "sábado",
    "domingo",
)


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    # Already aware - convert to UTC
    return dt.astimezone(timezone.utc)


def week_start(day: date) -> date:
    """Get the Monday of the week containing a date.

    Args:
        day: Any calendar date.

    Returns:
        The Monday on or before day.
    """
    return day - timedelta(days=day.weekday())


def format_date_es(day: date | datetime) -> str:
    """Format a date the way guardians read it (dd/mm/yyyy)."""
    return day.strftime("%d/%m/%Y")


def format_time_es(moment: datetime) -> str:
    """Format a time as HH:MM (24h)."""
    return moment.strftime("%H:%M")


def weekday_name_es(day: date | datetime) -> str:
    """Spanish name of the weekday for a date."""
    return SPANISH_WEEKDAYS[day.weekday()]
