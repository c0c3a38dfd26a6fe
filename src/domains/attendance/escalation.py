# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Weekly absence escalation.

Counts a student's unexcused absences in the current calendar week and
maps the count to an escalation level:

    0 absences  -> no notification
    1 absence   -> level 1 (first reminder)
    2 absences  -> level 2 (important)
    3 absences  -> level 3 (urgent)
    4 or more   -> level 4 (mandatory meeting)

Levels are recomputed on every run from the attendance store and are
never persisted, so the same absence set always yields the same level.
"""

import logging
from collections import Counter
from datetime import date
from typing import TYPE_CHECKING

from src.domains.attendance.schemas import AttendanceRecord, EscalationResult
from src.utils.datetime import week_start

if TYPE_CHECKING:
    from src.infrastructure.stores.base import AttendanceDataSource

logger = logging.getLogger(__name__)

MAX_ESCALATION_LEVEL = 4


def classify(count: int) -> int | None:
    """Map a weekly unexcused absence count to an escalation level.

    Args:
        count: Unexcused absences in the week.

    Returns:
        Level 1-4, or None when the count is zero.

    Raises:
        ValueError: If count is negative.
    """
    if count < 0:
        raise ValueError(f"Absence count cannot be negative: {count}")
    if count == 0:
        return None
    return min(count, MAX_ESCALATION_LEVEL)


def week_bounds(as_of: date) -> tuple[date, date]:
    """Return the Monday of as_of's week and as_of itself."""
    return week_start(as_of), as_of


def count_unexcused(records: list[AttendanceRecord], student_id: str) -> int:
    """Count unexcused absences of one student in a record list."""
    return sum(
        1 for record in records if record.student_id == student_id and record.is_unexcused_absence
    )


class EscalationClassifier:
    """Resolves escalation levels from the attendance store.

    Example:
        >>> classifier = EscalationClassifier(attendance_source)
        >>> count = await classifier.count_weekly_absences("s-1", date(2025, 3, 13))
        >>> classify(count)
        3
    """

    def __init__(self, attendance_source: "AttendanceDataSource") -> None:
        """Initialize the classifier.

        Args:
            attendance_source: Date-ranged attendance query.
        """
        self._attendance = attendance_source

    async def count_weekly_absences(self, student_id: str, as_of: date) -> int:
        """Count unexcused absences from Monday of as_of's week through as_of.

        Args:
            student_id: Student identifier.
            as_of: Last day included in the count.

        Returns:
            Number of unexcused absences.
        """
        start, end = week_bounds(as_of)
        records = await self._attendance.get_attendance_records_in_range(start, end)
        return count_unexcused(records, student_id)

    async def resolve_level(self, student_id: str, as_of: date) -> EscalationResult:
        """Count and classify a single student."""
        count = await self.count_weekly_absences(student_id, as_of)
        return EscalationResult(student_id=student_id, weekly_absences=count, level=classify(count))

    async def resolve_levels(
        self,
        student_ids: list[str],
        as_of: date,
    ) -> dict[str, EscalationResult]:
        """Count and classify many students with a single range query.

        Args:
            student_ids: Students to resolve.
            as_of: Last day included in the count.

        Returns:
            Escalation result per student id.
        """
        start, end = week_bounds(as_of)
        records = await self._attendance.get_attendance_records_in_range(start, end)

        wanted = set(student_ids)
        counts = Counter(
            record.student_id
            for record in records
            if record.student_id in wanted and record.is_unexcused_absence
        )

        results = {
            student_id: EscalationResult(
                student_id=student_id,
                weekly_absences=counts[student_id],
                level=classify(counts[student_id]),
            )
            for student_id in student_ids
        }

        logger.debug(
            "Resolved escalation for %d students (%s to %s), %d with absences",
            len(student_ids),
            start,
            end,
            len(counts),
        )
        return results
