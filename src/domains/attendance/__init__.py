# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Attendance domain package.

This package provides attendance models and the weekly escalation rules:
- Schemas: Student, attendance record and class/day document models
- EscalationClassifier: Weekly unexcused absence counting
- classify: Absence count to escalation level mapping
"""

from src.domains.attendance.escalation import (
    MAX_ESCALATION_LEVEL,
    EscalationClassifier,
    classify,
    count_unexcused,
    week_bounds,
)
from src.domains.attendance.schemas import (
    AttendanceDocument,
    AttendanceRecord,
    AttendanceStatus,
    ClassInfo,
    EscalationResult,
    Justification,
    StudentRecord,
)

__all__ = [
    "AttendanceDocument",
    "AttendanceRecord",
    "AttendanceStatus",
    "ClassInfo",
    "EscalationClassifier",
    "EscalationResult",
    "Justification",
    "MAX_ESCALATION_LEVEL",
    "StudentRecord",
    "classify",
    "count_unexcused",
    "week_bounds",
]
