# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student and attendance models.

These are the typed shapes read from the student record store and the
attendance store. Legacy documents (Spanish field names, class/day
attendance documents) are accepted through explicit converters so that
the rest of the service never handles untyped dictionaries.
"""

import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AttendanceStatus(str, Enum):
    """Attendance status of a student in a class session."""

    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    JUSTIFIED = "justified"


class StudentRecord(BaseModel):
    """Student with guardian contacts.

    Attributes:
        id: Student identifier.
        first_name: Given name.
        last_name: Family name.
        guardian_phones: Raw guardian phone strings, mother first.
    """

    id: str = Field(description="Student identifier")
    first_name: str = Field(default="", description="Given name")
    last_name: str = Field(default="", description="Family name")
    guardian_phones: list[str] = Field(
        default_factory=list,
        description="Raw guardian phone numbers",
    )

    @property
    def full_name(self) -> str:
        """First and last name joined by a space."""
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "StudentRecord":
        """Build a record from a legacy student document.

        Legacy documents store names as ``nombre``/``apellido`` and the
        guardian phones as ``tlf_madre``/``tlf_padre``. Empty phones
        are dropped.

        Args:
            document: Raw store document.

        Returns:
            Typed student record.
        """
        phones = document.get("guardian_phones")
        if phones is None:
            phones = [document.get("tlf_madre"), document.get("tlf_padre")]

        return cls(
            id=str(document.get("id", "")),
            first_name=document.get("first_name") or document.get("nombre") or "",
            last_name=document.get("last_name") or document.get("apellido") or "",
            guardian_phones=[p for p in phones if p],
        )


class AttendanceRecord(BaseModel):
    """Attendance of one student in one class on one day."""

    date: datetime.date
    class_id: str
    student_id: str
    status: AttendanceStatus
    justified: bool = False

    @property
    def is_unexcused_absence(self) -> bool:
        """True for an absence without a justification."""
        return self.status == AttendanceStatus.ABSENT and not self.justified


class Justification(BaseModel):
    """Justification attached to an absence."""

    student_id: str
    reason: str = ""


class AttendanceDocument(BaseModel):
    """Class/day attendance document as kept by the attendance store.

    Attributes:
        class_id: Class identifier.
        date: Session date.
        absent: Ids of absent students.
        present: Ids of present students.
        late: Ids of late students.
        justifications: Justified absences.
    """

    class_id: str
    date: datetime.date
    absent: list[str] = Field(default_factory=list)
    present: list[str] = Field(default_factory=list)
    late: list[str] = Field(default_factory=list)
    justifications: list[Justification] = Field(default_factory=list)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "AttendanceDocument":
        """Build a document from the legacy store shape.

        Legacy documents nest lists under ``data`` with the keys
        ``ausentes``, ``presentes``, ``tarde`` and ``justificacion``
        and keep the date as ``fecha``.
        """
        data = document.get("data", document)
        justifications = [
            Justification(
                student_id=item.get("studentId") or item.get("student_id", ""),
                reason=item.get("reason", ""),
            )
            for item in data.get("justificacion", data.get("justifications", []))
        ]
        return cls(
            class_id=document.get("classId") or document.get("class_id", ""),
            date=document.get("fecha") or document.get("date"),
            absent=list(data.get("ausentes", data.get("absent", []))),
            present=list(data.get("presentes", data.get("present", []))),
            late=list(data.get("tarde", data.get("late", []))),
            justifications=justifications,
        )

    def to_records(self) -> list[AttendanceRecord]:
        """Flatten the document into one record per listed student.

        A student listed as absent and also present in the justification
        list yields a justified absence.
        """
        justified_ids = {j.student_id for j in self.justifications}
        records: list[AttendanceRecord] = []

        for student_id in self.absent:
            justified = student_id in justified_ids
            records.append(
                AttendanceRecord(
                    date=self.date,
                    class_id=self.class_id,
                    student_id=student_id,
                    status=AttendanceStatus.JUSTIFIED if justified else AttendanceStatus.ABSENT,
                    justified=justified,
                )
            )
        for student_id in self.present:
            records.append(
                AttendanceRecord(
                    date=self.date,
                    class_id=self.class_id,
                    student_id=student_id,
                    status=AttendanceStatus.PRESENT,
                )
            )
        for student_id in self.late:
            records.append(
                AttendanceRecord(
                    date=self.date,
                    class_id=self.class_id,
                    student_id=student_id,
                    status=AttendanceStatus.LATE,
                )
            )
        return records


class ClassInfo(BaseModel):
    """Class details used when rendering messages."""

    id: str = ""
    name: str = ""
    teacher_name: str = ""
    schedule: str = ""


class EscalationResult(BaseModel):
    """Weekly escalation outcome for one student.

    Attributes:
        student_id: Student identifier.
        weekly_absences: Unexcused absences counted this week.
        level: Escalation level 1-4, or None when nothing to notify.
    """

    student_id: str
    weekly_absences: int = Field(ge=0)
    level: int | None = Field(default=None, ge=1, le=4)
